"""
Failure taxonomy for the proxy.

Every error carries the HTTP status the API layer should answer with, a
machine-readable reason and whatever context (url, size, quality) is useful
in operator logs.
"""

from typing import Any, Dict, Optional


class ProxyError(Exception):
    status_code = 500
    reason = "internal_error"
    # Shown to clients in place of `message` when set.
    public_message: Optional[str] = None

    def __init__(self, message: str, url: Optional[str] = None, **context: Any):
        super().__init__(message)
        self.message = message
        self.url = url
        self.context: Dict[str, Any] = context

    def to_payload(self) -> Dict[str, str]:
        payload = {"error": self.public_message or self.message}
        if self.url:
            payload["url"] = self.url
        return payload

    def log_fields(self) -> Dict[str, Any]:
        fields: Dict[str, Any] = {"reason": self.reason, "error": self.message}
        if self.url:
            fields["url"] = self.url
        fields.update(self.context)
        return fields


class ValidationError(ProxyError):
    """Missing or malformed source URL."""

    status_code = 400
    reason = "invalid_request"


class UpstreamTransportError(ProxyError):
    """Connect, timeout or IO failure talking to the upstream host, after retries."""

    status_code = 502
    reason = "upstream_transport"
    public_message = "Failed to fetch image"

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        last_error: Optional[BaseException] = None,
        attempts: int = 0,
        **context: Any,
    ):
        super().__init__(message, url=url, attempts=attempts, **context)
        self.last_error = last_error
        self.attempts = attempts


class UpstreamStatusError(ProxyError):
    """Upstream answered with a non-2xx status."""

    status_code = 502
    reason = "upstream_status"

    def __init__(self, message: str, url: Optional[str] = None, upstream_status: int = 0, **context: Any):
        super().__init__(message, url=url, upstream_status=upstream_status, **context)
        self.upstream_status = upstream_status


class CodecError(ProxyError):
    """Source bytes could not be decoded, or the encoder failed."""

    status_code = 500
    reason = "codec"
    public_message = "Compression failed"


class CodecIOError(CodecError):
    """Internal buffer failure while encoding."""

    reason = "codec_io"


class ResourceExhaustedError(ProxyError):
    """The fetch permit pool was closed (shutdown in progress)."""

    status_code = 503
    reason = "resource_exhausted"


class ClientDisconnected(ProxyError):
    """The inbound client went away; remaining work is abandoned."""

    status_code = 499
    reason = "client_disconnected"
