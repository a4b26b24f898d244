"""Error types raised by the conversion pipeline.

Every error carries the HTTP status it maps to, so the server layer can render
any of them without knowing which operation raised it.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class ConversionError(Exception):
    """Base class for failures reported back to the caller."""

    message: str
    status_code: int = 500

    def __post_init__(self) -> None:
        """Initialize the base exception with the message."""
        super().__init__(self.message)

    @property
    def public_message(self) -> str:
        """Text safe to return in a response body."""
        return self.message


@dataclass
class InputError(ConversionError):
    """Missing upload, bad parameter or wrong file count."""

    status_code: int = 400


@dataclass
class ParseError(InputError):
    """A page list could not be parsed."""

    message: str = "Invalid page ranges"


@dataclass
class DecodeError(ConversionError):
    """Upload bytes are corrupt or not in the expected format."""

    status_code: int = 400


@dataclass
class TransformError(ConversionError):
    """Encoding, resampling or flattening failed."""

    message: str = "Failed to process image"


@dataclass
class WorkspaceError(ConversionError):
    """Temporary storage could not be created, written or read."""


@dataclass
class LibraryError(ConversionError):
    """A PDF capability failed; the underlying message is kept for diagnostics."""

    detail: Optional[str] = None

    @property
    def public_message(self) -> str:
        if self.detail:
            return f"{self.message}: {self.detail}"
        return self.message
