"""Workspace-backed PDF operations: merge, split into an archive, optimise."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from .errors import InputError
from .models import ConversionResult, Upload
from .tools import (
    compress_pdf,
    merge_pdfs,
    parse_page_ranges,
    split_pdf_by_count,
    split_pdf_by_pages,
    zip_outputs,
)
from .workspace import DocumentWorkspace, safe_filename

logger = logging.getLogger(__name__)

SPLIT_MODES = ("pages", "count")


def _pdf_result(content: bytes, filename: str) -> ConversionResult:
    return ConversionResult(content=content, media_type="application/pdf", filename=filename)


def merge_documents(uploads: Sequence[Upload], temp_dir: Path | None = None) -> ConversionResult:
    """
    Merge uploaded PDFs in upload order.

    Raises:
        InputError: If fewer than two files were uploaded.
    """
    if len(uploads) < 2:
        raise InputError("At least two PDF files are required")
    with DocumentWorkspace(prefix="pdfmerge-", root=temp_dir) as workspace:
        paths = [
            workspace.save(upload.filename, upload.content, index=index)
            for index, upload in enumerate(uploads, start=1)
        ]
        merged = merge_pdfs(paths, workspace.file("merged.pdf"))
        return _pdf_result(workspace.read(merged), "merged.pdf")


def _resolve_split_pages(pages: str | None) -> list[int]:
    if pages is None or not pages.strip():
        raise InputError("Invalid page ranges")
    numbers = parse_page_ranges(pages)
    if any(number < 1 for number in numbers):
        raise InputError("Invalid page ranges")
    return numbers


def _resolve_split_count(count: str | int | None) -> int:
    try:
        value = int(count) if count is not None else 0
    except (TypeError, ValueError):
        value = 0
    if value < 1:
        raise InputError("Invalid page count")
    return value


def split_document(
    upload: Upload,
    mode: str | None,
    pages: str | None = None,
    count: str | int | None = None,
    temp_dir: Path | None = None,
) -> ConversionResult:
    """
    Split a PDF and return its parts as a zip archive.

    Parameters:
        upload (Upload): The PDF to split.
        mode (str | None): ``"pages"`` to split before each listed page, or
            ``"count"`` to split into groups of ``count`` pages.
        pages (str | None): Comma-separated page numbers for ``"pages"`` mode.
        count (str | int | None): Pages per part for ``"count"`` mode.

    Raises:
        InputError: On an unknown mode or invalid pages/count; raised before any
            temporary storage is created.
    """
    if mode == "pages":
        page_numbers = _resolve_split_pages(pages)
        page_count = None
    elif mode == "count":
        page_numbers = None
        page_count = _resolve_split_count(count)
    else:
        raise InputError("Invalid split mode")

    with DocumentWorkspace(prefix="pdfsplit-", root=temp_dir) as workspace:
        source = workspace.save(upload.filename, upload.content)
        if page_numbers is not None:
            split_pdf_by_pages(source, workspace.directory, page_numbers)
        else:
            split_pdf_by_count(source, workspace.directory, source.name, page_count)
        outputs = workspace.outputs()
        logger.info("Packaging %d split files", len(outputs))
        archive = zip_outputs(outputs)
    return ConversionResult(
        content=archive, media_type="application/zip", filename="split_pdfs.zip"
    )


def optimize_document(upload: Upload, temp_dir: Path | None = None) -> ConversionResult:
    """Compress a PDF; the result is named ``compressed_<original name>``."""
    filename = safe_filename(upload.filename)
    with DocumentWorkspace(prefix="pdfcompress-", root=temp_dir) as workspace:
        source = workspace.save(filename, upload.content)
        target = workspace.file(f"compressed_{filename}")
        compress_pdf(source, target)
        return _pdf_result(workspace.read(target), target.name)
