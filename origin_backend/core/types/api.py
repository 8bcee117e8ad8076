"""Type definitions for API components"""

from typing import Any, Dict, Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response"""

    error: str
    code: str
    detail: Optional[str] = None
    status_code: int


# API responses
SuccessResponse = Dict[str, Any]
DetailResponse = Dict[str, Any]
