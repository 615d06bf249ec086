"""Output geometry and container selection."""

import math
from enum import Enum
from typing import Tuple


class OutputFormat(str, Enum):
    AVIF = "avif"
    JPEG = "jpeg"
    ORIGINAL = "original"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_dimensions(width: int, height: int, max_width: int = 400) -> Tuple[int, int]:
    """
    Scale (width, height) down so width equals `max_width`, keeping aspect ratio.

    Each side is rounded on its own, so the ratio may drift by a pixel.
    """
    if width <= max_width:
        return width, height

    ratio = max_width / width
    return (
        max(1, _round_half_up(width * ratio)),
        max(1, _round_half_up(height * ratio)),
    )


def select_format(
    want_avif: bool,
    height: int,
    max_jpeg_height: int = 32767,
    max_avif_height: int = 16383,
) -> OutputFormat:
    if height > max_jpeg_height:
        return OutputFormat.JPEG

    if want_avif and height > max_avif_height:
        return OutputFormat.JPEG

    return OutputFormat.AVIF if want_avif else OutputFormat.JPEG
