"""
Image compression endpoint.
"""

from typing import Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from ..core.pipeline import ProxyResult, RequestPipeline, parse_query_params
from ..schemas.errors import ErrorResponse

router = APIRouter(prefix="/api", tags=["images"])

COMPRESSED_BY = "bandwidth-hero"

CACHE_HEADERS = {
    "content-encoding": "identity",
    "cache-control": "private, no-store, no-cache, must-revalidate, max-age=0",
    "pragma": "no-cache",
    "expires": "0",
    "vary": "url, jpeg, grayscale, quality",
}


def get_pipeline(request: Request) -> RequestPipeline:
    return request.app.state.pipeline


def build_headers(result: ProxyResult) -> Dict[str, str]:
    headers = dict(CACHE_HEADERS)
    headers["x-url-hash"] = result.url_hash
    if result.bypass_reason is not None:
        headers["x-bypass-reason"] = result.bypass_reason
    else:
        headers["x-compressed-by"] = COMPRESSED_BY
        headers["x-bytes-saved"] = str(result.bytes_saved or 0)
    return headers


ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Missing or invalid url"},
    500: {"model": ErrorResponse, "description": "Image could not be transcoded"},
    502: {"model": ErrorResponse, "description": "Upstream fetch failed"},
    503: {"model": ErrorResponse, "description": "Shutting down"},
}


@router.get("/index", responses=ERROR_RESPONSES)
@router.get("/index/", include_in_schema=False)
async def compress_image(
    request: Request,
    url: Optional[str] = Query(None, description="Upstream image URL"),
    jpeg: Optional[str] = Query(None, description="'1' forces JPEG output"),
    bw: Optional[str] = Query(None, description="'1' requests grayscale"),
    l: Optional[str] = Query(None, description="Quality 0-100"),  # noqa: E741
    pipeline: RequestPipeline = Depends(get_pipeline),
):
    params = parse_query_params(url, jpeg, bw, l, pipeline.config.DEFAULT_QUALITY)
    result = await pipeline.handle(
        params,
        request.headers,
        client_ip=request.client.host if request.client else None,
        is_disconnected=request.is_disconnected,
    )
    return Response(
        content=result.data,
        media_type=result.content_type,
        headers=build_headers(result),
    )
