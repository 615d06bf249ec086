"""
Request pipeline: parse -> fetch -> bypass check -> transcode -> respond.

The pipeline knows nothing about FastAPI; it returns a ProxyResult that the
API layer turns into a response, and raises ProxyError subclasses on failure.
"""

from __future__ import annotations

import asyncio
import hashlib
from concurrent.futures import Executor
from dataclasses import dataclass
from functools import partial
from typing import Awaitable, Callable, Mapping, Optional

import httpx

from .bypass import should_bypass_compression
from .codecs import Encoders
from .compress import CompressionResult, TranscodeRequest, compress
from .config import Settings
from .dimensions import OutputFormat
from .errors import ClientDisconnected, CodecError, UpstreamStatusError, ValidationError
from .proxy_log import ProxyLogger
from .upstream import UpstreamFetcher

DisconnectProbe = Callable[[], Awaitable[bool]]

FALLBACK_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class ProxyParams:
    image_url: str
    force_jpeg: bool
    grayscale: bool
    quality: int
    raw_jpeg: Optional[str] = None
    raw_bw: Optional[str] = None

    @property
    def want_avif(self) -> bool:
        return not self.force_jpeg


@dataclass
class ProxyResult:
    data: bytes
    content_type: str
    url_hash: str
    bypass_reason: Optional[str] = None
    bytes_saved: Optional[int] = None


def _parse_quality(raw: Optional[str], default: int) -> int:
    if raw is None:
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        return default
    return max(0, min(100, value))


def parse_query_params(
    url: Optional[str],
    jpeg: Optional[str] = None,
    bw: Optional[str] = None,
    quality: Optional[str] = None,
    default_quality: int = 40,
) -> ProxyParams:
    if not url or not url.strip():
        raise ValidationError("Missing query parameters")
    return ProxyParams(
        image_url=url.strip(),
        force_jpeg=jpeg == "1",
        grayscale=bw == "1",
        quality=_parse_quality(quality, default_quality),
        raw_jpeg=jpeg,
        raw_bw=bw,
    )


def clean_image_url(url: str) -> str:
    """Validate `url` and return its canonical string form."""
    try:
        parsed = httpx.URL(url.strip())
    except (httpx.InvalidURL, TypeError, ValueError) as exc:
        raise ValidationError("Invalid URL") from exc
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise ValidationError("Invalid URL")
    return str(parsed)


def generate_url_hash(url: str) -> str:
    return hashlib.md5(url.encode("utf-8")).hexdigest()


class RequestPipeline:
    def __init__(
        self,
        fetcher: UpstreamFetcher,
        encoders: Encoders,
        config: Settings,
        logger: ProxyLogger,
        executor: Optional[Executor] = None,
    ):
        self.fetcher = fetcher
        self.encoders = encoders
        self.config = config
        self.logger = logger
        self.executor = executor

    async def _abandon_if_disconnected(self, probe: Optional[DisconnectProbe], url: str, stage: str) -> None:
        if probe is not None and await probe():
            raise ClientDisconnected("Client disconnected", url=url, stage=stage)

    async def _transcode(self, request: TranscodeRequest) -> CompressionResult:
        job = partial(compress, request, self.encoders, self.logger, self.config)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, job)

    async def handle(
        self,
        params: ProxyParams,
        inbound_headers: Mapping[str, str],
        client_ip: Optional[str] = None,
        is_disconnected: Optional[DisconnectProbe] = None,
    ) -> ProxyResult:
        image_url = clean_image_url(params.image_url)
        url_hash = generate_url_hash(image_url)

        await self._abandon_if_disconnected(is_disconnected, image_url, "fetch")
        fetch_result = await self.fetcher.fetch(image_url, inbound_headers)

        self.logger.log_upstream_fetch(image_url, fetch_result.status, fetch_result.ok)
        if not fetch_result.ok:
            raise UpstreamStatusError(
                "Upstream fetch failed",
                url=image_url,
                upstream_status=fetch_result.status,
            )

        content_length = len(fetch_result.data)
        lowered = {key.lower(): value for key, value in inbound_headers.items()}
        self.logger.log_request(
            image_url,
            lowered.get("user-agent"),
            lowered.get("referer"),
            lowered.get("x-forwarded-for") or client_ip,
            params.raw_jpeg,
            params.raw_bw,
            params.quality,
            fetch_result.content_type,
        )

        reason = should_bypass_compression(
            content_length,
            fetch_result.content_type,
            params.want_avif,
            self.config,
        )
        if reason is not None:
            self.logger.log_bypass(image_url, content_length, reason)
            return ProxyResult(
                data=fetch_result.data,
                content_type=fetch_result.content_type or FALLBACK_CONTENT_TYPE,
                url_hash=url_hash,
                bypass_reason=reason,
            )

        await self._abandon_if_disconnected(is_disconnected, image_url, "codec")
        request = TranscodeRequest(
            source_bytes=fetch_result.data,
            want_avif=params.want_avif,
            grayscale=params.grayscale,
            quality=params.quality,
            original_size=content_length,
        )
        try:
            result = await self._transcode(request)
        except CodecError as exc:
            exc.url = image_url
            exc.context.update({"size": content_length, "quality": params.quality})
            raise

        if result.format == OutputFormat.ORIGINAL:
            content_type = fetch_result.content_type
        else:
            content_type = f"image/{result.format.value}"
        return ProxyResult(
            data=result.data,
            content_type=content_type,
            url_hash=url_hash,
            bytes_saved=result.bytes_saved,
        )
