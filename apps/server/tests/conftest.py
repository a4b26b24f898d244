"""
Pytest fixtures for generating image and PDF uploads in memory.
"""

from io import BytesIO
from pathlib import Path

import pytest
from PIL import Image
from pypdf import PdfWriter


def _pdf_bytes(pages: int, width: int = 300, height: int = 300) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=width, height=height)
    buffer = BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def _image_bytes(
    fmt: str = "PNG",
    size=(80, 60),
    color=(120, 140, 180),
    mode: str = "RGB",
) -> bytes:
    image = Image.new(mode, size, color=color)
    buffer = BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def pdf_factory():
    """Return a callable that builds a blank PDF with the given page count."""
    return _pdf_bytes


@pytest.fixture
def image_factory():
    """Return a callable that builds a solid-colour JPEG or PNG."""
    return _image_bytes


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    """Root for request workspaces; tests assert it is left empty."""
    return tmp_path / "work"


def residue(root: Path) -> list:
    """Everything left under a workspace root."""
    if not root.exists():
        return []
    return list(root.iterdir())


@pytest.fixture
def leftovers():
    """Return the helper that lists files left under a workspace root."""
    return residue
