"""Error taxonomy shared by the pipeline and its collaborators.

Every error carries a machine-readable ``code``. The pipeline is the only
place these are caught and turned into user-facing replies; the original
message is kept for logs and never shown to the end user.
"""

from __future__ import annotations


class BotError(Exception):
    """Base class for all expected failures."""

    code = "BOT_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(BotError):
    """Inbound data has the wrong shape (missing sender, empty text, too large)."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class UnsupportedMediaError(BotError):
    """Declared MIME type is neither a PDF nor an image."""

    code = "UNSUPPORTED_MEDIA"


class ExtractionError(BotError):
    """An attachment could not be decoded."""

    code = "EXTRACTION_ERROR"


class StorageError(BotError):
    """The persistence layer failed."""

    code = "STORAGE_ERROR"


class BackendError(BotError):
    """The generative backend failed or returned nothing."""

    code = "BACKEND_ERROR"


class TransportError(BotError):
    """The messaging channel (WhatsApp Cloud API) failed."""

    code = "TRANSPORT_ERROR"
