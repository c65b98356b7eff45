"""Outbound message posted to a destination message area."""

from datetime import datetime, timezone
from typing import Any, Dict
import uuid

from pydantic import BaseModel, ConfigDict, Field

# Report bodies are authored for classic 8-bit terminals
EXPLICIT_ENCODING = "cp437"


def _default_meta() -> Dict[str, Any]:
    return {"System": {"explicit_encoding": EXPLICIT_ENCODING}}


class OutboundMessage(BaseModel):
    """One message carrying the full rendered report

    Attributes:
        area_tag: Destination message area tag.
        to_user_name: Display name of the recipient.
        from_user_name: Display name of the sender.
        subject: Rendered subject line.
        message: Report body.
        meta: Message metadata; carries the explicit body encoding.
    """

    model_config = ConfigDict(frozen=True)

    message_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    area_tag: str = Field(..., min_length=1)
    to_user_name: str
    from_user_name: str
    subject: str
    message: str
    meta: Dict[str, Any] = Field(default_factory=_default_meta)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
