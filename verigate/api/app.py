"""
VeriGate — FastAPI Application.

Run: uvicorn verigate.main:app --host 0.0.0.0 --port 8002

  - GET    /health                                  ← liveness + component metrics
  - POST   /api/v1/admin/blocks                     ← manual block
  - POST   /api/v1/admin/blocks/status              ← body {dimension, value}
  - POST   /api/v1/admin/blocks/unblock             ← body {dimension, value}
  - GET    /api/v1/verifications/{verification_id}
  - GET    /api/v1/reviews
  - POST   /api/v1/reviews/{review_id}/start
  - POST   /api/v1/reviews/{review_id}/resolve
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI

from verigate.admission.limiter import AdmissionLimiter
from verigate.api.routers.blocks import router as blocks_router
from verigate.api.routers.reviews import router as reviews_router
from verigate.api.routers.verifications import router as verifications_router
from verigate.config import Settings, settings as default_settings
from verigate.logging_config import configure_logging
from verigate.middleware.admission import AdmissionMiddleware
from verigate.middleware.error_handler import ErrorHandlerMiddleware
from verigate.routing.router import TierRouter
from verigate.scheduler import MaintenanceScheduler
from verigate.validation.engine import CrossSourceValidator

logger = structlog.get_logger(__name__)


def create_app(
    limiter: Optional[AdmissionLimiter] = None,
    validator: Optional[CrossSourceValidator] = None,
    router: Optional[TierRouter] = None,
    settings: Optional[Settings] = None,
    start_scheduler: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application around the three components."""
    settings = settings or default_settings
    limiter = limiter or AdmissionLimiter.from_settings(settings)
    validator = validator or CrossSourceValidator.from_settings(settings)
    router = router or TierRouter.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level, settings.log_format)
        logger.info("verigate_starting", version=settings.app_version)
        scheduler = None
        if start_scheduler:
            scheduler = MaintenanceScheduler(limiter, validator, settings.prune_interval_seconds)
            scheduler.start()
        app.state.scheduler = scheduler
        yield
        if scheduler is not None:
            scheduler.stop()
        logger.info("verigate_shutdown")

    app = FastAPI(
        title=settings.app_name,
        description="Risk-adaptive verification admission: rate limiting, cross-source validation, tier routing.",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_tags=[
            {"name": "health", "description": "Liveness check"},
            {"name": "admin", "description": "Manual entity blocks"},
            {"name": "verifications", "description": "Verification Record status"},
            {"name": "human-review", "description": "Manual review queue"},
        ],
    )

    app.state.limiter = limiter
    app.state.validator = validator
    app.state.router = router

    # ── Middleware (last added = outermost) ──────────────────────────
    app.add_middleware(AdmissionMiddleware, limiter=limiter)
    app.add_middleware(ErrorHandlerMiddleware)

    # ── Routes ────────────────────────────────────────────────────────
    app.include_router(blocks_router)
    app.include_router(verifications_router)
    app.include_router(reviews_router)

    @app.get("/health", tags=["health"])
    async def health():
        """Liveness check with component metrics. No raw identifiers."""
        return {
            "status": "ok",
            "version": settings.app_version,
            "service": "verigate",
            "active_blocks": limiter.get_statistics()["active_blocks"],
            "validation": validator.get_metrics(),
            "routing": router.get_metrics(),
        }

    return app
