from fastapi import APIRouter, status
from fastapi.responses import PlainTextResponse

router = APIRouter()

SERVICE_NAME = "bandwidth-hero-proxy"


@router.get("/health", status_code=status.HTTP_200_OK, response_class=PlainTextResponse)
@router.get("/health/", include_in_schema=False, response_class=PlainTextResponse)
async def health() -> str:
    return SERVICE_NAME
