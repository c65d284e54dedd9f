"""
Admission Middleware — runs every HTTP request through the AdmissionLimiter.

Dimensions come from the client address and the X-User-ID,
X-Device-Fingerprint and X-Location headers. Refusals answer 429 with a
Retry-After header; suspicious but allowed requests carry X-Security-Risk
and X-Security-Patterns on the response.

Health and docs are exempt.
"""

import json
from typing import Optional

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from verigate.admission.limiter import AdmissionLimiter
from verigate.admission.limits import categorize_endpoint
from verigate.admission.schemas import AdmissionRequest

logger = structlog.get_logger(__name__)

EXEMPT_PATHS = frozenset({"/health", "/docs", "/openapi.json", "/redoc"})

USER_ID_HEADER = "X-User-ID"
DEVICE_HEADER = "X-Device-Fingerprint"
LOCATION_HEADER = "X-Location"


def admission_request_from(request: Request) -> AdmissionRequest:
    return AdmissionRequest(
        ip=request.client.host if request.client else None,
        user_id=request.headers.get(USER_ID_HEADER),
        device_fingerprint=request.headers.get(DEVICE_HEADER),
        location=request.headers.get(LOCATION_HEADER),
        path=request.url.path,
        method=request.method,
    )


class AdmissionMiddleware(BaseHTTPMiddleware):
    """
    Uses the limiter passed at registration, else app.state.limiter.
    """

    def __init__(self, app, limiter: Optional[AdmissionLimiter] = None):
        super().__init__(app)
        self._limiter = limiter

    def _resolve_limiter(self, request: Request) -> Optional[AdmissionLimiter]:
        if self._limiter is not None:
            return self._limiter
        return getattr(request.app.state, "limiter", None)

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        limiter = self._resolve_limiter(request)

        if path in EXEMPT_PATHS or limiter is None:
            return await call_next(request)

        result = limiter.check(admission_request_from(request))

        if not result.allowed:
            logger.warning(
                "admission_refused",
                endpoint_class=categorize_endpoint(path).value,
                reason=result.reason,
                scope=result.scope,
                retry_after=result.retry_after,
            )
            body = {
                "error": "Too many requests",
                "reason": result.reason,
                "scope": result.scope,
                "retry_after": result.retry_after,
                "status": 429,
            }
            return Response(
                status_code=429,
                content=json.dumps(body),
                media_type="application/json",
                headers={"Retry-After": str(result.retry_after or 1)},
            )

        response = await call_next(request)

        if result.suspicious:
            response.headers["X-Security-Risk"] = str(int(result.risk_score))
            response.headers["X-Security-Patterns"] = ",".join(result.patterns)

        return response
