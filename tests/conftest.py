"""
Shared fixtures for the proxy tests.
"""

import pytest

from app.core.codecs import JpegEncoder, Encoders
from app.core.config import Settings
from app.core.proxy_log import ProxyLogger

from .imaging import make_image_bytes


@pytest.fixture
def config():
    return Settings(
        FETCH_THROTTLE_DELAY=0.0,
        FETCH_TIMEOUT=2.0,
        LOG_ENABLED=False,
        _env_file=None,
    )


@pytest.fixture
def proxy_logger():
    return ProxyLogger()


@pytest.fixture
def jpeg_only():
    jpeg = JpegEncoder()
    return Encoders(jpeg=jpeg, avif=jpeg)


@pytest.fixture
def noisy_jpeg():
    """400x400 noise JPEG, comfortably above every bypass floor."""
    return make_image_bytes(400, 400, "JPEG", quality=95)
