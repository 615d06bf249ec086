from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes_health import router as health_router
from .api.images import router as images_router
from .core.codecs import Encoders, build_encoders
from .core.config import Settings, settings as default_settings
from .core.errors import ClientDisconnected, ProxyError
from .core.pipeline import RequestPipeline
from .core.proxy_log import ProxyLogger, configure_logging
from .core.upstream import FetchPermitPool, UpstreamFetcher
from .schemas.errors import ErrorResponse


def create_http_client(config: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=config.FETCH_TIMEOUT,
        follow_redirects=True,
        limits=httpx.Limits(
            max_connections=config.FETCH_CONCURRENCY,
            max_keepalive_connections=8,
            keepalive_expiry=90.0,
        ),
        transport=transport,
    )


def register_error_handlers(app: FastAPI, logger: ProxyLogger) -> None:
    @app.exception_handler(ProxyError)
    async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
        if isinstance(exc, ClientDisconnected):
            logger.info("[pipeline] request abandoned", exc.log_fields())
        elif exc.status_code >= 500:
            logger.error("[pipeline] request failed", exc.log_fields())
        else:
            logger.warning("[pipeline] request rejected", exc.log_fields())
        body = ErrorResponse(**exc.to_payload())
        return JSONResponse(status_code=exc.status_code, content=body.model_dump(exclude_none=True))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "[pipeline] unhandled error",
            {"path": request.url.path, "error": repr(exc)},
        )
        body = ErrorResponse(error="Internal server error")
        return JSONResponse(status_code=500, content=body.model_dump(exclude_none=True))


def create_app(
    config: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    encoders: Optional[Encoders] = None,
) -> FastAPI:
    config = config or default_settings
    logger = ProxyLogger(configure_logging(config.LOG_LEVEL, config.LOG_ENABLED))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        pool = FetchPermitPool(config.FETCH_CONCURRENCY)
        executor = ThreadPoolExecutor(
            max_workers=max(1, config.CODEC_WORKERS),
            thread_name_prefix="codec",
        )
        codecs = encoders or build_encoders()
        logger.info(
            "[startup] Starting Bandwidth Hero Proxy",
            {
                "port": config.PORT,
                "concurrency": pool.capacity,
                "avif": codecs.avif is not codecs.jpeg,
            },
        )
        async with create_http_client(config, transport) as client:
            fetcher = UpstreamFetcher(client, pool, config, logger)
            app.state.pipeline = RequestPipeline(fetcher, codecs, config, logger, executor)
            try:
                yield
            finally:
                pool.close()
                executor.shutdown(wait=False, cancel_futures=True)
                logger.info("[shutdown] Bandwidth Hero Proxy stopped")

    app = FastAPI(
        title="Bandwidth Hero Proxy",
        description="Fetches images and re-encodes them to save bandwidth",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app, logger)

    app.include_router(health_router)
    app.include_router(images_router)
    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=default_settings.PORT)


if __name__ == "__main__":
    run()
