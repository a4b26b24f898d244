"""Raster image transforms: conversion, compression, resizing and PDF embedding."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Dict, Sequence, Tuple

import numpy as np
from fpdf import FPDF
from PIL import Image, UnidentifiedImageError

from .colors import detect_background_color, match_mask
from .errors import DecodeError, InputError, TransformError
from .models import ConversionResult

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS: Dict[str, Tuple[str, str]] = {
    "JPEG": ("image/jpeg", "jpg"),
    "PNG": ("image/png", "png"),
}
DEFAULT_QUALITY = 50
PDF_IMAGE_QUALITY = 90
PDF_IMAGE_MARGIN_MM = 10
PDF_IMAGE_WIDTH_MM = 190
# Modes Pillow can write as PNG without conversion.
PNG_MODES = {"1", "L", "LA", "I", "I;16", "P", "RGB", "RGBA"}


@dataclass
class RasterImage:
    """A decoded image together with the format it was decoded from."""

    image: Image.Image
    format: str


def decode_image(data: bytes, expected_format: str | None = None) -> RasterImage:
    """
    Decode JPEG or PNG bytes into a ``RasterImage``.

    Parameters:
        data (bytes): Raw upload content.
        expected_format (str | None): When given ("JPEG" or "PNG"), decoding fails
            unless the bytes are in that format.

    Raises:
        DecodeError: If the bytes are not a decodable image of an allowed format.
    """
    formats: Sequence[str] = (
        [expected_format] if expected_format else list(SUPPORTED_FORMATS)
    )
    label = "JPG" if expected_format == "JPEG" else (expected_format or "image")
    try:
        image = Image.open(BytesIO(data), formats=formats)
        image.load()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as error:
        raise DecodeError(f"Failed to decode {label}") from error
    except Image.DecompressionBombError as error:
        raise DecodeError("Image is too large to decode") from error
    # Multi-picture JPEGs from cameras report themselves as MPO.
    fmt = "JPEG" if image.format == "MPO" else (image.format or formats[0])
    return RasterImage(image=image, format=fmt)


def flatten(image: Image.Image) -> Image.Image:
    """Drop the alpha channel by compositing onto an opaque black canvas."""
    if image.mode in ("RGB", "L"):
        return image
    rgba = image.convert("RGBA")
    canvas = Image.new("RGBA", rgba.size, (0, 0, 0, 255))
    return Image.alpha_composite(canvas, rgba).convert("RGB")


def encode_image(image: Image.Image, fmt: str, quality: int | None = None) -> bytes:
    """
    Encode ``image`` as JPEG or PNG.

    ``quality`` only applies to JPEG; PNG output is always lossless.

    Raises:
        InputError: If ``fmt`` is not JPEG or PNG.
        TransformError: If the encoder fails.
    """
    if fmt not in SUPPORTED_FORMATS:
        raise InputError("Unsupported image format")
    buffer = BytesIO()
    try:
        if fmt == "JPEG":
            prepared = image if image.mode in ("RGB", "L", "CMYK") else flatten(image)
            options = {} if quality is None else {"quality": quality}
            prepared.save(buffer, format="JPEG", **options)
        else:
            prepared = image if image.mode in PNG_MODES else image.convert("RGBA")
            prepared.save(buffer, format="PNG")
    except (OSError, ValueError) as error:
        raise TransformError(f"Failed to encode {fmt}") from error
    return buffer.getvalue()


def _result(content: bytes, fmt: str, stem: str) -> ConversionResult:
    media_type, extension = SUPPORTED_FORMATS[fmt]
    return ConversionResult(
        content=content, media_type=media_type, filename=f"{stem}.{extension}"
    )


def convert_image(data: bytes, source_format: str, target_format: str) -> ConversionResult:
    """Strictly decode ``source_format`` bytes and re-encode as ``target_format``."""
    raster = decode_image(data, expected_format=source_format)
    logger.info("Converting %s image to %s", source_format, target_format)
    return _result(encode_image(raster.image, target_format), target_format, "converted")


def normalize_quality(quality: int | None) -> int:
    """Return ``quality`` if it is within 1..100, otherwise ``DEFAULT_QUALITY``."""
    if quality is None or quality < 1 or quality > 100:
        return DEFAULT_QUALITY
    return quality


def compress_image(data: bytes, quality: int | None = None) -> ConversionResult:
    """Re-encode an image in its own format at the requested JPEG quality."""
    raster = decode_image(data)
    resolved = normalize_quality(quality)
    logger.info("Compressing %s image at quality %d", raster.format, resolved)
    if raster.format == "JPEG":
        content = encode_image(raster.image, "JPEG", quality=resolved)
    else:
        content = encode_image(raster.image, raster.format)
    return _result(content, raster.format, "compressed")


def _target_size(size: Tuple[int, int], width: int, height: int) -> Tuple[int, int]:
    """Fill in a zero dimension so the aspect ratio is preserved."""
    old_width, old_height = size
    if width and height:
        return width, height
    if width:
        scale = old_width / width
        return width, max(1, int(0.7 + old_height / scale))
    scale = old_height / height
    return max(1, int(0.7 + old_width / scale)), height


def resize_image(data: bytes, width: int, height: int) -> ConversionResult:
    """
    Resample an image with a Lanczos filter.

    Negative dimensions are treated as 0. At least one dimension must be
    positive; a dimension of 0 is derived from the other to keep the aspect
    ratio.

    Raises:
        InputError: If both dimensions resolve to 0.
    """
    width = max(width, 0)
    height = max(height, 0)
    if width == 0 and height == 0:
        raise InputError("At least one of width or height must be a positive integer")
    raster = decode_image(data)
    image = raster.image
    if image.mode in ("1", "P"):
        image = image.convert("RGBA")
    target = _target_size(image.size, width, height)
    logger.info("Resizing %s image from %s to %s", raster.format, image.size, target)
    try:
        resized = image.resize(target, Image.Resampling.LANCZOS)
    except (OSError, ValueError) as error:
        raise TransformError("Failed to encode resized image") from error
    return _result(encode_image(resized, raster.format), raster.format, "resized")


def remove_background(data: bytes) -> ConversionResult:
    """
    Make the detected background colour transparent.

    The background is the most frequent colour along the image edges; every
    pixel within tolerance of it becomes ``(0, 0, 0, 0)``. Output is always PNG.
    """
    raster = decode_image(data)
    width, height = raster.image.size
    if width == 0 or height == 0:
        raise InputError("Image has no pixels")
    rgba = raster.image.convert("RGBA")
    background = detect_background_color(rgba)
    pixels = np.array(rgba, dtype=np.uint8)
    mask = match_mask(pixels, background)
    pixels[mask] = 0
    logger.info(
        "Removed background %s from %d of %d pixels",
        tuple(background),
        int(mask.sum()),
        width * height,
    )
    output = Image.fromarray(pixels)
    return _result(encode_image(output, "PNG"), "PNG", "transparent")


def image_to_pdf(data: bytes) -> ConversionResult:
    """
    Place an image on a single A4 page.

    The image is flattened, encoded as JPEG at quality 90 and drawn 10mm from
    the top-left corner at a width of 190mm; height follows the aspect ratio.
    """
    raster = decode_image(data)
    try:
        flattened = flatten(raster.image)
    except (OSError, ValueError) as error:
        raise TransformError("Failed to flatten image") from error
    jpeg_bytes = encode_image(flattened, "JPEG", quality=PDF_IMAGE_QUALITY)

    pdf = FPDF(orientation="P", unit="mm", format="A4")
    pdf.set_auto_page_break(auto=False)
    pdf.add_page()
    try:
        pdf.image(
            BytesIO(jpeg_bytes),
            x=PDF_IMAGE_MARGIN_MM,
            y=PDF_IMAGE_MARGIN_MM,
            w=PDF_IMAGE_WIDTH_MM,
        )
        pdf_output = pdf.output()
    except Exception as error:  # noqa: BLE001
        raise TransformError("Failed to generate PDF") from error
    if isinstance(pdf_output, str):
        pdf_bytes = pdf_output.encode("latin-1")
    else:
        pdf_bytes = bytes(pdf_output)
    logger.info("Embedded %s image %s into a one-page PDF", raster.format, raster.image.size)
    return ConversionResult(
        content=pdf_bytes, media_type="application/pdf", filename="converted.pdf"
    )
