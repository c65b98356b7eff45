"""Exception hierarchy for the new-files announcement job.

Every error raised by the pipeline derives from AnnounceError so that the
CLI and the scheduled job can report any run failure through a single
except block. All of them are terminal for the current run; nothing is
retried internally.
"""

from typing import Optional


class AnnounceError(Exception):
    """Base exception for all announcement run errors

    ```python
    try:
        await pipeline.run()
    except AnnounceError as e:
        logger.error("announce_failed", error=str(e))
    ```
    """

    pass


class MissingParameter(AnnounceError):
    """Job invoked without a required argument

    Raised when:
    - No destination message area tag was supplied
    """

    pass


class ConfigError(AnnounceError):
    """Options source could not be used

    Raised when:
    - Options file exists but cannot be read
    - YAML is malformed or is not a mapping
    - A value fails validation (bad regex, unknown encoding, ...)
    """

    pass


class TemplateLoadError(AnnounceError):
    """A report template is missing or unreadable

    Raised when:
    - Template file does not exist in any search location
    - Template bytes cannot be decoded with the configured encoding
    """

    pass


class CatalogError(AnnounceError):
    """File catalog query or load failed"""

    pass


class FileNotFoundInCatalogError(CatalogError):
    """A listed file id no longer resolves

    Raised when a file is removed between listing and loading. The whole run
    is aborted rather than producing a partial report.
    """

    def __init__(self, file_id: object) -> None:
        super().__init__(f"File not found in catalog: {file_id}")
        self.file_id = file_id


class NotInitializedError(AnnounceError):
    """First ever run: checkpoint was just initialized

    Expected on the very first run. The checkpoint has been set to the
    current time so the next scheduled run reports files added after it.
    """

    pass


class DeliveryError(AnnounceError):
    """Sending the report to a destination failed

    Destinations after the failing one are not attempted.
    """

    def __init__(self, message: str, destination: Optional[str] = None) -> None:
        super().__init__(message)
        self.destination = destination
