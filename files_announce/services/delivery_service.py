"""Delivery of the rendered report to destination message areas.

Provides:
- MessageSink: interface for persisting an outbound message
- MessageAreaStore: writes messages as JSON files per message area
- WebhookMessageSink: posts messages to an HTTP endpoint
- DeliveryService: one message per destination, strictly in order

Delivery is fail-fast: the first destination that fails raises
DeliveryError and later destinations are not attempted. Nothing is
retried.

Usage:
    service = DeliveryService(MessageAreaStore(Path("data/messages")))
    messages = await service.deliver(report.text, ["fsx_bot"], options, report.context)
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Iterable, List, Mapping

import structlog

from files_announce.models.message import OutboundMessage
from files_announce.models.options import AnnounceOptions
from files_announce.observability.metrics import MESSAGES_DELIVERED
from files_announce.output.report_renderer import render_subject
from files_announce.utils.exceptions import DeliveryError

logger = structlog.get_logger()


def parse_destinations(values: Iterable[str]) -> List[str]:
    """Split comma separated destination tags, keeping their order.

    Args:
        values: Raw arguments, each holding one or more comma separated tags

    Returns:
        Non-empty, whitespace-stripped tags
    """
    tags: List[str] = []
    for value in values:
        for tag in str(value).split(","):
            tag = tag.strip()
            if tag:
                tags.append(tag)
    return tags


class MessageSink(ABC):
    """Persists outbound messages to a message area"""

    @property
    @abstractmethod
    def name(self) -> str:
        """Sink name for logging"""
        pass

    @abstractmethod
    async def persist(self, message: OutboundMessage) -> None:
        """Persist one message

        Raises:
            Exception: Any failure; DeliveryService wraps it in DeliveryError
        """
        pass


class MessageAreaStore(MessageSink):
    """Stores each message as ``<root>/<area_tag>/<message_id>.json``"""

    def __init__(self, root: Path):
        self.root = Path(root)

    @property
    def name(self) -> str:
        return "message_area_store"

    async def persist(self, message: OutboundMessage) -> None:
        area_dir = self.root / message.area_tag
        area_dir.mkdir(parents=True, exist_ok=True)

        target = area_dir / f"{message.message_id}.json"
        temp_file = target.with_suffix(".tmp")

        # Atomic write: write to temp file, then rename
        try:
            with open(temp_file, "w", encoding="utf-8") as f:
                f.write(message.model_dump_json(indent=2))
            temp_file.replace(target)
        except Exception:
            if temp_file.exists():
                temp_file.unlink()
            raise

    def list_messages(self, area_tag: str) -> List[OutboundMessage]:
        """Messages stored for an area, oldest first"""
        area_dir = self.root / area_tag
        if not area_dir.exists():
            return []

        messages = []
        for path in area_dir.glob("*.json"):
            with open(path, "r", encoding="utf-8") as f:
                messages.append(OutboundMessage(**json.load(f)))
        return sorted(messages, key=lambda m: m.created_at)


class WebhookMessageSink(MessageSink):
    """Posts each message as JSON to a webhook URL"""

    def __init__(self, url: str, timeout_seconds: float = 10.0):
        self.url = url
        self.timeout_seconds = timeout_seconds

    @property
    def name(self) -> str:
        return "webhook"

    async def persist(self, message: OutboundMessage) -> None:
        import aiohttp

        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(
                self.url,
                json=message.model_dump(mode="json"),
                headers={"Content-Type": "application/json"},
            ) as response:
                if response.status >= 300:
                    body = await response.text()
                    raise RuntimeError(
                        f"Webhook returned HTTP {response.status}: {body[:200]}"
                    )


class DeliveryService:
    """Sends the report to each destination in turn"""

    def __init__(self, sink: MessageSink):
        self.sink = sink

    def build_message(
        self,
        destination: str,
        report_text: str,
        options: AnnounceOptions,
        context: Mapping[str, Any],
    ) -> OutboundMessage:
        """Message for one destination carrying the full report"""
        return OutboundMessage(
            area_tag=destination,
            to_user_name=options.to_user_name,
            from_user_name=options.from_user_name,
            subject=render_subject(options.subject_format, context),
            message=report_text,
        )

    async def deliver(
        self,
        report_text: str,
        destinations: Iterable[str],
        options: AnnounceOptions,
        context: Mapping[str, Any],
    ) -> List[OutboundMessage]:
        """Deliver the report to every destination, in listed order.

        Args:
            report_text: Rendered report body
            destinations: Destination tags (comma separated values allowed)
            options: Run options (names and subject format)
            context: Final render context for the subject line

        Returns:
            Messages delivered, in order

        Raises:
            DeliveryError: On the first failing destination
        """
        delivered: List[OutboundMessage] = []

        for destination in parse_destinations(destinations):
            message = self.build_message(destination, report_text, options, context)
            try:
                await self.sink.persist(message)
            except Exception as e:
                MESSAGES_DELIVERED.labels(status="failed").inc()
                logger.error(
                    "delivery_failed",
                    destination=destination,
                    sink=self.sink.name,
                    delivered=len(delivered),
                    error=str(e),
                )
                raise DeliveryError(
                    f"Failed to deliver report to '{destination}': {e}",
                    destination=destination,
                ) from e

            MESSAGES_DELIVERED.labels(status="success").inc()
            delivered.append(message)
            logger.info(
                "report_delivered",
                destination=destination,
                sink=self.sink.name,
                subject=message.subject,
                message_id=message.message_id,
            )

        return delivered
