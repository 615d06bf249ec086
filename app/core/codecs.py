"""
Encoder capabilities used by the transcoder.

AVIF support depends on how Pillow was built. `build_encoders` checks once at
startup; when AVIF is missing the AVIF slot is filled with the JPEG encoder,
so callers only see a different format tag.
"""

from dataclasses import dataclass
from io import BytesIO
from typing import Protocol

from PIL import Image, features

from .dimensions import OutputFormat
from .errors import CodecError, CodecIOError


class ImageEncoder(Protocol):
    """Turns a decoded image into bytes of a single output format."""

    format: OutputFormat

    def encode(self, image: Image.Image, quality: int) -> bytes: ...


def has_alpha(image: Image.Image) -> bool:
    """True for alpha bands and for palette/RGB images carrying a transparency entry."""
    return "A" in image.getbands() or "transparency" in image.info


class JpegEncoder:
    format = OutputFormat.JPEG

    def encode(self, image: Image.Image, quality: int) -> bytes:
        if image.mode not in ("RGB", "L"):
            image = image.convert("RGB")
        return _save(image, "JPEG", quality=quality, optimize=True)


class AvifEncoder:
    format = OutputFormat.AVIF

    def __init__(self, speed: int = 4):
        self.speed = speed

    def encode(self, image: Image.Image, quality: int) -> bytes:
        if image.mode != "RGBA" and has_alpha(image):
            image = image.convert("RGBA")
        elif image.mode not in ("RGB", "RGBA"):
            image = image.convert("RGB")
        return _save(image, "AVIF", quality=quality, speed=self.speed)


def _save(image: Image.Image, pil_format: str, **options) -> bytes:
    buffer = BytesIO()
    try:
        image.save(buffer, format=pil_format, **options)
    except (KeyError, ValueError) as exc:
        raise CodecError(f"{pil_format} encoding failed: {exc}") from exc
    except OSError as exc:
        raise CodecIOError(f"{pil_format} encoder buffer failure: {exc}") from exc
    return buffer.getvalue()


@dataclass(frozen=True)
class Encoders:
    jpeg: ImageEncoder
    avif: ImageEncoder

    def for_format(self, output_format: OutputFormat) -> ImageEncoder:
        if output_format == OutputFormat.AVIF:
            return self.avif
        return self.jpeg


def avif_available() -> bool:
    return bool(features.check("avif"))


def build_encoders(enable_avif: bool = True) -> Encoders:
    jpeg = JpegEncoder()
    if enable_avif and avif_available():
        return Encoders(jpeg=jpeg, avif=AvifEncoder())
    return Encoders(jpeg=jpeg, avif=jpeg)
