"""
Resize and re-encode images to a smaller, lower-fidelity representation.
"""

from dataclasses import dataclass
from io import BytesIO
from typing import Optional

from PIL import Image, UnidentifiedImageError

from .codecs import Encoders, has_alpha
from .config import Settings, settings as default_settings
from .dimensions import OutputFormat, calculate_dimensions, select_format
from .errors import CodecError
from .proxy_log import ProxyLogger


@dataclass(frozen=True)
class TranscodeRequest:
    source_bytes: bytes
    want_avif: bool
    grayscale: bool
    quality: int
    original_size: int


@dataclass
class CompressionResult:
    data: bytes
    format: OutputFormat
    bytes_saved: int


def effective_quality(quality: int, grayscale: bool, config: Settings) -> int:
    """Grayscale output needs less bitrate, so its quality is clamped into a narrower band."""
    if not grayscale:
        return quality
    return max(config.GRAYSCALE_QUALITY_MIN, min(config.GRAYSCALE_QUALITY_MAX, quality))


def decode_image(data: bytes) -> Image.Image:
    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise CodecError(f"Unable to decode image: {exc}", size=len(data)) from exc
    return image


def compress(
    request: TranscodeRequest,
    encoders: Encoders,
    logger: ProxyLogger,
    config: Optional[Settings] = None,
) -> CompressionResult:
    """
    Decode, resize, optionally desaturate and re-encode `request.source_bytes`.

    Never returns more bytes than `request.original_size`: when the encoder's
    output is strictly larger the original bytes come back tagged `original`.
    """
    config = config or default_settings
    logger.debug(
        "[compress] started",
        {
            "originalSize": request.original_size,
            "quality": request.quality,
            "useAvif": request.want_avif,
            "grayscale": request.grayscale,
        },
    )

    image = decode_image(request.source_bytes)

    orig_width, orig_height = image.size
    new_width, new_height = calculate_dimensions(orig_width, orig_height, config.MAX_WIDTH)
    logger.debug(
        "[compress] dimensions",
        {
            "original": {"width": orig_width, "height": orig_height},
            "resized": {"width": new_width, "height": new_height},
        },
    )

    if (new_width, new_height) != (orig_width, orig_height):
        if image.mode not in ("RGB", "RGBA", "L", "LA"):
            image = image.convert("RGBA" if has_alpha(image) else "RGB")
        image = image.resize((new_width, new_height), Image.Resampling.LANCZOS)

    if request.grayscale:
        image = image.convert("L")

    output_format = select_format(
        request.want_avif,
        new_height,
        config.MAX_JPEG_HEIGHT,
        config.MAX_AVIF_HEIGHT,
    )
    quality = effective_quality(request.quality, request.grayscale, config)

    encoder = encoders.for_format(output_format)
    compressed = encoder.encode(image, quality)
    compressed_size = len(compressed)
    format_tag = encoder.format

    if compressed_size > request.original_size:
        logger.log_compression_process(
            request.original_size,
            compressed_size,
            0,
            quality,
            format_tag.value,
            error="bypassed-larger",
        )
        return CompressionResult(
            data=request.source_bytes,
            format=OutputFormat.ORIGINAL,
            bytes_saved=0,
        )

    bytes_saved = request.original_size - compressed_size
    logger.log_compression_process(
        request.original_size,
        compressed_size,
        bytes_saved,
        quality,
        format_tag.value,
    )
    return CompressionResult(data=compressed, format=format_tag, bytes_saved=bytes_saved)
