"""Plain data carriers shared by the image, document and server layers."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Upload:
    """One uploaded file, already read into memory."""

    filename: str
    content: bytes


@dataclass(frozen=True)
class ConversionResult:
    """Bytes produced by an operation plus the metadata needed to send them."""

    content: bytes
    media_type: str
    filename: str

    @property
    def content_disposition(self) -> str:
        return f'attachment; filename="{self.filename}"'
