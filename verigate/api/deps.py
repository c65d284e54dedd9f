"""
FastAPI dependencies — components live on app.state, set by create_app().
"""

from fastapi import Request

from verigate.admission.limiter import AdmissionLimiter
from verigate.routing.router import TierRouter
from verigate.validation.engine import CrossSourceValidator


def get_limiter(request: Request) -> AdmissionLimiter:
    return request.app.state.limiter


def get_validator(request: Request) -> CrossSourceValidator:
    return request.app.state.validator


def get_router(request: Request) -> TierRouter:
    return request.app.state.router
