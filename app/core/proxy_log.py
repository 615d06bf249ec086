"""
Logging for the proxy.

`configure_logging` runs once at startup; a `ProxyLogger` is then handed to
the fetcher, the transcoder and the pipeline instead of being looked up
globally.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Dict, Optional

LOGGER_NAME = "app.proxy"
_SIZE_UNITS = ["Bytes", "KB", "MB", "GB", "TB", "PB", "EB", "ZB", "YB"]


def configure_logging(level: str = "INFO", enabled: bool = True) -> logging.Logger:
    """Set up the proxy logger. Unknown level names fall back to INFO."""
    logger = logging.getLogger(LOGGER_NAME)
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logger.setLevel(resolved)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)
        logger.propagate = False
    logger.disabled = not enabled
    return logger


def format_bytes(size: int) -> str:
    if size <= 0:
        return "0 Bytes"
    index = min(int(math.floor(math.log(size, 1024))), len(_SIZE_UNITS) - 1)
    return f"{size / math.pow(1024, index):.2f} {_SIZE_UNITS[index]}"


def truncate(value: str, max_length: int) -> str:
    if len(value) > max_length:
        return value[: max(0, max_length - 3)] + "..."
    return value


def _dumps(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, default=str)


class ProxyLogger:
    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(LOGGER_NAME)

    def debug(self, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self.logger.debug("%s: %s", message, _dumps(metadata or {}))

    def info(self, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self.logger.info("%s: %s", message, _dumps(metadata or {}))

    def warning(self, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self.logger.warning("%s: %s", message, _dumps(metadata or {}))

    def error(self, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self.logger.error("%s: %s", message, _dumps(metadata or {}))

    def log_request(
        self,
        url: str,
        user_agent: Optional[str],
        referer: Optional[str],
        ip: Optional[str],
        jpeg: Optional[str],
        bw: Optional[str],
        quality: int,
        content_type: Optional[str],
    ) -> None:
        if not self.logger.isEnabledFor(logging.DEBUG):
            return
        self.debug(
            "[request] received",
            {
                "url": truncate(url, 20),
                "client": {
                    "ip": ip or "Unknown",
                    "userAgent": truncate(user_agent or "", 100),
                    "referer": referer or "Direct",
                },
                "compressionOptions": {
                    "forceJpeg": jpeg is not None,
                    "grayscale": bw is not None,
                    "quality": quality,
                },
                "contentType": content_type or "Unknown",
            },
        )

    def log_bypass(self, url: str, size: int, reason: str) -> None:
        self.info(
            "[bypass] skipping transcode",
            {"url": truncate(url, 20), "size": format_bytes(size), "reason": reason},
        )

    def log_upstream_fetch(self, url: str, status_code: int, success: bool) -> None:
        icon = "ok" if success else "fail"
        if success:
            self.logger.info("[fetch] %s %s - %s", icon, status_code, truncate(url, 60))
        else:
            self.logger.warning("[fetch] %s %s - %s", icon, status_code, truncate(url, 60))

    def log_compression_process(
        self,
        original_size: int,
        compressed_size: Optional[int],
        bytes_saved: Optional[int],
        quality: int,
        output_format: str,
        error: Optional[str] = None,
    ) -> None:
        if error:
            self.logger.warning(
                "[compress] %s skipped (%s) - %s -> %s Q: %s",
                output_format,
                error,
                format_bytes(original_size),
                format_bytes(compressed_size or 0),
                quality,
            )
            return
        if compressed_size is None or bytes_saved is None:
            return
        percent = (
            (original_size - compressed_size) / original_size * 100.0
            if original_size > 0
            else 0.0
        )
        self.logger.info(
            "[compress] %s - S: %s/%.1f%% Q: %s",
            output_format,
            bytes_saved,
            percent,
            quality,
        )
