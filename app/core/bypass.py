"""
Decide whether an upstream image is worth transcoding at all.
"""

from typing import Optional

from .config import Settings

SUPPORTED_IMAGE_TYPES = (
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/bmp",
    "image/tiff",
)

REASON_ALREADY_SMALL = "already_small"
REASON_CRITERIA_NOT_MET = "criteria_not_met"
REASON_NON_IMAGE = "non-image"


def is_supported_image_type(image_type: str) -> bool:
    return image_type.lower() in SUPPORTED_IMAGE_TYPES


def should_compress(image_type: str, size: int, is_transparent: bool, config: Settings) -> bool:
    """
    Check type and size constraints.

    `is_transparent` is the client's transparency-capable intent (it did not
    force JPEG). Without it, PNG and GIF only qualify past a much higher floor
    because small lossless images rarely shrink when re-encoded lossy.
    """
    if not image_type:
        return False

    if size > config.MAX_ORIGINAL_SIZE or size < config.MIN_COMPRESS_LENGTH:
        return False

    if not is_supported_image_type(image_type):
        return False

    if is_transparent:
        return size >= config.MIN_COMPRESS_LENGTH

    if image_type.endswith("png") or image_type.endswith("gif"):
        return size >= config.MIN_TRANSPARENT_COMPRESS_LENGTH

    return True


def should_bypass_compression(
    content_length: int,
    content_type: str,
    want_avif: bool,
    config: Settings,
) -> Optional[str]:
    """Return the bypass reason, or None when the image should be transcoded."""
    if content_length < config.BYPASS_THRESHOLD:
        return REASON_ALREADY_SMALL

    if not should_compress(content_type, content_length, want_avif, config):
        return REASON_CRITERIA_NOT_MET

    if not content_type.startswith("image/"):
        return REASON_NON_IMAGE

    return None
