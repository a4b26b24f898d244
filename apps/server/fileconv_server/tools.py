"""PDF page operations, page-list parsing and archive packaging."""

from __future__ import annotations

import logging
import re
import zipfile
from io import BytesIO
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple

import fitz
from pypdf import PdfReader, PdfWriter
from pypdf.errors import PdfReadError, PyPdfError

from .errors import DecodeError, LibraryError, ParseError

logger = logging.getLogger(__name__)

_INTEGER = re.compile(r"[+-]?\d+")
# Readers accept the header anywhere in the first kilobyte.
PDF_SIGNATURE = b"%PDF-"


def parse_page_ranges(value: str) -> List[int]:
    """
    Parse a comma-separated list of page numbers.

    Whitespace around each entry is ignored. Order and duplicates are kept as
    given, and zero or negative numbers are returned unchanged.

    Parameters:
        value (str): Text such as ``"1, 3,5"``.

    Returns:
        list[int]: The page numbers, e.g. ``[1, 3, 5]``.

    Raises:
        ParseError: If any entry, including an empty one, is not an integer.
    """
    pages: List[int] = []
    for part in value.split(","):
        cleaned = part.strip()
        if not _INTEGER.fullmatch(cleaned):
            raise ParseError()
        pages.append(int(cleaned))
    return pages


def _load_pdf(input_path: Path) -> PdfReader:
    """Load a PDF, rejecting unreadable or encrypted input."""
    try:
        with input_path.open("rb") as handle:
            header = handle.read(1024)
        if PDF_SIGNATURE not in header:
            raise DecodeError(f"Not a PDF file: {input_path.name}")
        reader = PdfReader(str(input_path))
        if reader.is_encrypted:
            raise DecodeError(f"PDF is encrypted: {input_path.name}")
        len(reader.pages)
    except (PdfReadError, PyPdfError, OSError, ValueError) as error:
        raise DecodeError(
            f"PDF appears to be corrupted or unreadable: {input_path.name}"
        ) from error
    return reader


def _span_name(stem: str, start: int, end: int) -> str:
    if start == end:
        return f"{stem}_{start}.pdf"
    return f"{stem}_{start}-{end}.pdf"


def _write_spans(
    reader: PdfReader,
    spans: Sequence[Tuple[int, int]],
    output_dir: Path,
    stem: str,
) -> List[Path]:
    """Write each inclusive 1-based page span to its own PDF."""
    output_files: List[Path] = []
    for start, end in spans:
        writer = PdfWriter()
        for page_number in range(start - 1, end):
            writer.add_page(reader.pages[page_number])
        output_path = output_dir / _span_name(stem, start, end)
        with output_path.open("wb") as handle:
            writer.write(handle)
        output_files.append(output_path)
    return output_files


def merge_pdfs(inputs: Sequence[Path], output_path: Path) -> Path:
    """
    Merge multiple PDF files into a single PDF.

    Parameters:
        inputs (Sequence[Path]): Paths to source PDF files, merged in the given order.
        output_path (Path): Destination path for the merged PDF.

    Returns:
        Path: The path to the written merged PDF (same as `output_path`).
    """
    readers = [_load_pdf(path) for path in inputs]
    writer = PdfWriter()
    try:
        for reader in readers:
            for page in reader.pages:
                writer.add_page(page)
        with output_path.open("wb") as handle:
            writer.write(handle)
    except (PyPdfError, OSError, ValueError) as error:
        raise LibraryError("Error merging PDFs", detail=str(error)) from error
    logger.info("Merged %d PDFs into %s", len(inputs), output_path.name)
    return output_path


def page_spans_by_split_points(pages: Iterable[int], total_pages: int) -> List[Tuple[int, int]]:
    """
    Turn split points into inclusive page spans.

    Each page number starts a new part. Numbers at or below 1, beyond the last
    page, or repeated are ignored, so ``[3, 5]`` on a 6-page document yields
    ``[(1, 2), (3, 4), (5, 6)]``.
    """
    spans: List[Tuple[int, int]] = []
    if total_pages < 1:
        return spans
    start = 1
    for page in sorted(set(pages)):
        if page <= start or page > total_pages:
            continue
        spans.append((start, page - 1))
        start = page
    spans.append((start, total_pages))
    return spans


def page_spans_by_count(count: int, total_pages: int) -> List[Tuple[int, int]]:
    """Group pages into consecutive spans of ``count`` pages; the last may be shorter."""
    return [
        (start, min(start + count - 1, total_pages))
        for start in range(1, total_pages + 1, count)
    ]


def split_pdf_by_pages(input_path: Path, output_dir: Path, pages: Sequence[int]) -> List[Path]:
    """Split a PDF at the given page numbers, writing one file per part."""
    reader = _load_pdf(input_path)
    total_pages = len(reader.pages)
    spans = page_spans_by_split_points(pages, total_pages)
    try:
        outputs = _write_spans(reader, spans, output_dir, input_path.stem)
    except (PyPdfError, OSError, ValueError) as error:
        raise LibraryError("Error splitting PDF", detail=str(error)) from error
    logger.info("Split %s (%d pages) into %d parts", input_path.name, total_pages, len(outputs))
    return outputs


def split_pdf_by_count(
    input_path: Path,
    output_dir: Path,
    filename: str,
    count: int,
) -> List[Path]:
    """
    Split a PDF into files of ``count`` consecutive pages.

    Parameters:
        input_path (Path): The PDF to split.
        output_dir (Path): Directory that receives the parts.
        filename (str): Original upload name; its stem names the parts.
        count (int): Pages per part, at least 1.

    Returns:
        list[Path]: The written parts in page order.
    """
    if count < 1:
        raise ValueError("count must be at least 1")
    reader = _load_pdf(input_path)
    total_pages = len(reader.pages)
    spans = page_spans_by_count(count, total_pages)
    stem = Path(filename).stem or input_path.stem
    try:
        outputs = _write_spans(reader, spans, output_dir, stem)
    except (PyPdfError, OSError, ValueError) as error:
        raise LibraryError("Error splitting PDF", detail=str(error)) from error
    logger.info(
        "Split %s (%d pages) into %d parts of %d", input_path.name, total_pages, len(outputs), count
    )
    return outputs


def compress_pdf(input_path: Path, output_path: Path) -> Path:
    """Rewrite a PDF with unused objects dropped and streams deflated."""
    _load_pdf(input_path)
    try:
        with fitz.open(str(input_path)) as document:
            document.save(
                str(output_path),
                garbage=4,
                deflate=True,
                deflate_images=True,
                deflate_fonts=True,
                clean=True,
            )
    except Exception as error:  # noqa: BLE001
        raise LibraryError("Error compressing PDF", detail=str(error)) from error
    logger.info(
        "Compressed %s from %d to %d bytes",
        input_path.name,
        input_path.stat().st_size,
        output_path.stat().st_size,
    )
    return output_path


def zip_outputs(outputs: Iterable[Path]) -> bytes:
    """Pack files into an in-memory deflate zip, one entry per file by base name."""
    buffer = BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for path in outputs:
            if not path.is_file():
                continue
            archive.write(path, arcname=path.name)
    return buffer.getvalue()
