"""
Error response schema shared by every proxy failure.
"""

from typing import Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """JSON body returned instead of image bytes when a request fails."""
    error: str = Field(..., description="Human readable failure")
    url: Optional[str] = Field(None, description="Upstream URL involved, when known")
