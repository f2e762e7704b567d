"""
Standardized response utilities
"""

from typing import Any, Optional
from fastapi import Request
from fastapi.responses import JSONResponse

from tripsync.core.errors import TripSyncError
from tripsync.schemas.common import StandardResponse, ErrorResponse

def success_response(
    message: str,
    data: Any = None,
    status_code: int = 200
) -> JSONResponse:
    """Create standardized success response"""
    response = StandardResponse(
        success=True,
        message=message,
        data=data
    )
    return JSONResponse(
        content=response.model_dump(mode="json"),
        status_code=status_code
    )

def error_response(
    message: str,
    error_code: Optional[str] = None,
    details: Any = None,
    status_code: int = 400
) -> JSONResponse:
    """Create standardized error response"""
    response = ErrorResponse(
        message=message,
        error_code=error_code,
        details=details
    )
    return JSONResponse(
        content=response.model_dump(mode="json"),
        status_code=status_code
    )

async def domain_error_handler(request: Request, exc: TripSyncError) -> JSONResponse:
    """Map a domain error to the standard error envelope"""
    return error_response(
        message=exc.message,
        error_code=exc.kind,
        details=exc.details,
        status_code=exc.status_code
    )
