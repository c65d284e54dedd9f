"""
Global Error Handler Middleware.

VeriGate errors map to their own status and structured body. Anything
else becomes a generic 500 with an error_id for log correlation; stack
traces and exception text never reach the client.
"""

import traceback
import uuid

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from verigate.admission.limits import categorize_endpoint
from verigate.config import settings
from verigate.errors import ErrorCode, VeriGateError

logger = structlog.get_logger(__name__)

STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.REVIEW_NOT_FOUND: 404,
    ErrorCode.INVALID_REVIEW_TRANSITION: 409,
    ErrorCode.CONFIGURATION_ERROR: 500,
}


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Outermost middleware."""

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)

        except VeriGateError as exc:
            status_code = STATUS_BY_CODE.get(exc.code, 400)
            logger.info(
                "request_failed",
                endpoint_class=categorize_endpoint(request.url.path).value,
                code=exc.code.value,
                status=status_code,
            )
            return JSONResponse(
                status_code=status_code,
                content={**exc.to_dict(), "status": status_code},
            )

        except Exception as exc:
            error_id = str(uuid.uuid4())
            logger.error(
                "unhandled_exception",
                error_id=error_id,
                endpoint_class=categorize_endpoint(request.url.path).value,
                method=request.method,
                error=str(exc),
                traceback=traceback.format_exc(),
            )

            body: dict = {
                "error": "An internal error occurred. Please try again later.",
                "error_id": error_id,
                "status": 500,
            }
            if settings.debug:
                body["debug_hint"] = type(exc).__name__

            return JSONResponse(status_code=500, content=body)
