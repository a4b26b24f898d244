"""Colour sampling and tolerance matching used for background removal."""

from collections import Counter
from typing import Iterator, NamedTuple, Sequence, Tuple, Union

import numpy as np
from PIL import Image

EDGE_SAMPLE_WIDTH = 10
# Per-channel tolerance on the 16-bit scale (0-65535).
COLOR_TOLERANCE = 5000

Sample = Union[int, Sequence[int]]


class Color(NamedTuple):
    """RGBA colour with 8-bit channels and alpha-premultiplied R, G and B."""

    r: int
    g: int
    b: int
    a: int = 255


def _premultiply16(value: int, alpha: int) -> int:
    """Premultiply an 8-bit channel by an 8-bit alpha on the 16-bit scale."""
    return value * 257 * (alpha * 257) // 65535


def quantize(sample: Sample) -> Color:
    """
    Normalise a pixel sample to an 8-bit premultiplied ``Color``.

    Accepts the values Pillow hands out for single-band (``int``), LA, RGB and
    RGBA pixels. Channels are clamped to 0..255, premultiplied by alpha on the
    16-bit scale and shifted back to 8 bits, so every fully transparent pixel
    becomes ``Color(0, 0, 0, 0)`` whatever RGB it hides.
    """
    if isinstance(sample, int):
        level = min(max(sample, 0), 255)
        return Color(level, level, level, 255)
    channels = [min(max(int(value), 0), 255) for value in sample]
    if len(channels) == 2:
        level, alpha = channels
        red = green = blue = level
    elif len(channels) == 3:
        red, green, blue = channels
        alpha = 255
    elif len(channels) == 4:
        red, green, blue, alpha = channels
    else:
        raise ValueError(f"Unsupported pixel sample: {sample!r}")
    return Color(
        _premultiply16(red, alpha) >> 8,
        _premultiply16(green, alpha) >> 8,
        _premultiply16(blue, alpha) >> 8,
        alpha,
    )


def to_rgba64(color: Color) -> Tuple[int, int, int, int]:
    """Expand a premultiplied 8-bit colour to 16-bit channels."""
    return color.r * 257, color.g * 257, color.b * 257, color.a * 257


def is_color_match(first: Color, second: Color) -> bool:
    """Return True if R, G and B all differ by less than ``COLOR_TOLERANCE``."""
    r1, g1, b1, _ = to_rgba64(first)
    r2, g2, b2, _ = to_rgba64(second)
    return (
        abs(r1 - r2) < COLOR_TOLERANCE
        and abs(g1 - g2) < COLOR_TOLERANCE
        and abs(b1 - b2) < COLOR_TOLERANCE
    )


def match_mask(pixels: np.ndarray, color: Color) -> np.ndarray:
    """
    Vectorised ``is_color_match`` over an ``H x W x 4`` uint8 RGBA array.

    Pixels are premultiplied at full 16-bit precision and compared against the
    16-bit expansion of ``color``.

    Returns:
        np.ndarray: Boolean ``H x W`` mask, True where the pixel matches ``color``.
    """
    channels = pixels.astype(np.int64) * 257
    alpha = channels[..., 3:4]
    premultiplied = channels[..., :3] * alpha // 65535
    reference = np.array(to_rgba64(color)[:3], dtype=np.int64)
    return np.all(np.abs(premultiplied - reference) < COLOR_TOLERANCE, axis=-1)


def _edge_coordinates(width: int, height: int) -> Iterator[Tuple[int, int]]:
    band_x = min(EDGE_SAMPLE_WIDTH, width)
    band_y = min(EDGE_SAMPLE_WIDTH, height)
    for y in range(height):
        for x in range(band_x):
            yield x, y
    for y in range(height):
        for x in range(width - band_x, width):
            yield x, y
    for x in range(width):
        for y in range(band_y):
            yield x, y
    for x in range(width):
        for y in range(height - band_y, height):
            yield x, y


def count_edge_colors(image: Image.Image) -> Counter:
    """
    Tally quantised colours in a band along each edge of ``image``.

    Scan order is left edge top-to-bottom, right edge top-to-bottom, top edge
    left-to-right, then bottom edge left-to-right. Corner pixels fall in more
    than one band and are counted once per band.
    """
    width, height = image.size
    if width == 0 or height == 0:
        raise ValueError("Cannot sample the edges of an empty image")
    rgba = image if image.mode == "RGBA" else image.convert("RGBA")
    pixels = rgba.load()
    counts: Counter = Counter()
    for x, y in _edge_coordinates(width, height):
        counts[quantize(pixels[x, y])] += 1
    return counts


def detect_background_color(image: Image.Image) -> Color:
    """Return the most common edge colour; ties go to the first one seen."""
    best_color = None
    best_count = 0
    for color, count in count_edge_colors(image).items():
        if count > best_count:
            best_color = color
            best_count = count
    return best_color
