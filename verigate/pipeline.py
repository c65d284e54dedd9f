"""
Verification Pipeline — composes the three components for one funding attempt.

Flow:
1. Admission check (refusal ends the attempt)
2. Pre-screen raw user data (failure → rejection payload)
3. Identity verification → initial tier (REJECT ends the attempt)
4. Payment-link verification when the initial tier asks for it
5. Bank-link verification
6. Cross-validation → final routing

Verifiers are caller-supplied. A failing secondary verifier degrades to an
unsuccessful source result so routing can flag it; a failing identity
verifier ends the attempt with success=False.
"""

import time
from datetime import datetime
from typing import Optional, Protocol

import structlog
from pydantic import BaseModel, Field

from verigate.admission.limiter import AdmissionLimiter
from verigate.admission.schemas import AdmissionRequest, AdmissionResult
from verigate.privacy import mask_pii
from verigate.routing.router import TierRouter
from verigate.routing.schemas import RejectionResponse, RoutingDecision, Tier
from verigate.validation.engine import CrossSourceValidator
from verigate.validation.schemas import IdentityResult, SourceName, SourceResult, UserData

logger = structlog.get_logger(__name__)

PRE_SCREEN_FAILED = "PRE_SCREEN_FAILED"
HIGH_RISK = "HIGH_RISK"
VERIFIER_ERROR_FLAG = "verifier_error"


class IdentityVerifier(Protocol):
    async def verify_identity(self, user_data: UserData) -> IdentityResult: ...


class PaymentLinkVerifier(Protocol):
    async def verify_payment_link(
        self, user_data: UserData, identity: IdentityResult
    ) -> SourceResult: ...


class BankLinkVerifier(Protocol):
    async def verify_bank_link(
        self, user_data: UserData, identity: IdentityResult
    ) -> SourceResult: ...


class PipelineOutcome(BaseModel):
    """What the caller of a funding attempt gets back."""
    success: bool
    user_id: str = "undefined"                 # masked
    admission: Optional[AdmissionResult] = None
    verification_id: Optional[str] = None
    tier: Optional[Tier] = None
    confidence: float = 0.0
    requires_manual_review: bool = False
    routing: Optional[RoutingDecision] = None
    rejection: Optional[RejectionResponse] = None
    sources: dict[str, bool] = Field(default_factory=dict)
    error: Optional[str] = None
    response_time_ms: float = 0.0
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class VerificationPipeline:
    def __init__(
        self,
        limiter: AdmissionLimiter,
        validator: CrossSourceValidator,
        router: TierRouter,
        identity_verifier: IdentityVerifier,
        payment_link_verifier: Optional[PaymentLinkVerifier] = None,
        bank_link_verifier: Optional[BankLinkVerifier] = None,
    ):
        self.limiter = limiter
        self.validator = validator
        self.router = router
        self.identity_verifier = identity_verifier
        self.payment_link_verifier = payment_link_verifier
        self.bank_link_verifier = bank_link_verifier
        self._metrics = {"total": 0, "completed": 0, "refused": 0, "rejected": 0, "errors": 0}

    async def verify(self, request: AdmissionRequest, user_data: UserData) -> PipelineOutcome:
        started = time.perf_counter()
        self._metrics["total"] += 1
        masked = mask_pii(user_data.user_id)

        def elapsed() -> float:
            return round((time.perf_counter() - started) * 1000, 2)

        admission = self.limiter.check(request)
        if not admission.allowed:
            self._metrics["refused"] += 1
            return PipelineOutcome(
                success=False,
                user_id=masked,
                admission=admission,
                error=admission.reason,
                response_time_ms=elapsed(),
            )

        pre_screen = self.validator.pre_screen(user_data)
        if not pre_screen.passed:
            self._metrics["rejected"] += 1
            logger.info("pipeline_pre_screen_rejected", user=masked, issues=pre_screen.issues)
            return PipelineOutcome(
                success=False,
                user_id=masked,
                admission=admission,
                tier=Tier.REJECT,
                rejection=self.router.create_rejection_response(None, PRE_SCREEN_FAILED),
                response_time_ms=elapsed(),
            )

        try:
            identity = await self.identity_verifier.verify_identity(user_data)
        except Exception as e:
            self._metrics["errors"] += 1
            logger.error("identity_verification_failed", user=masked, error=str(e))
            return PipelineOutcome(
                success=False,
                user_id=masked,
                admission=admission,
                error=str(e),
                response_time_ms=elapsed(),
            )

        approval = self.router.apply_adaptive_strategy(identity)
        if approval.tier == Tier.REJECT:
            self._metrics["rejected"] += 1
            return PipelineOutcome(
                success=False,
                user_id=masked,
                admission=admission,
                tier=Tier.REJECT,
                confidence=approval.confidence,
                rejection=self.router.create_rejection_response(approval, HIGH_RISK),
                response_time_ms=elapsed(),
            )

        payment_link = None
        if approval.requires_payment_link_verification and self.payment_link_verifier is not None:
            payment_link = await self._secondary(
                "payment_link", self.payment_link_verifier.verify_payment_link, user_data, identity
            )
        bank_link = None
        if self.bank_link_verifier is not None:
            bank_link = await self._secondary(
                "bank_link", self.bank_link_verifier.verify_bank_link, user_data, identity
            )

        # Sources the initial tier did not ask for and nobody consulted are not gaps.
        unrequested = []
        if payment_link is None and not approval.requires_payment_link_verification:
            unrequested.append(SourceName.PAYMENT_LINK)
        if bank_link is None and not approval.requires_bank_link_verification:
            unrequested.append(SourceName.BANK_LINK)

        final_result = self.validator.cross_validate_all(
            identity, payment_link, bank_link, unrequested=unrequested
        )
        routing = self.router.route_to_tier(final_result, approval)

        self._metrics["completed"] += 1
        outcome = PipelineOutcome(
            success=True,
            user_id=masked,
            admission=admission,
            verification_id=final_result.verification_id,
            tier=routing.final_tier,
            confidence=routing.confidence,
            requires_manual_review=routing.requires_manual_review,
            routing=routing,
            sources={
                "identity": final_result.sources.identity,
                "payment_link": final_result.sources.payment_link,
                "bank_link": final_result.sources.bank_link,
                "validation": final_result.validation.passed,
                "automated": routing.automated,
            },
            response_time_ms=elapsed(),
        )
        logger.info(
            "pipeline_completed",
            user=masked,
            verification_id=outcome.verification_id,
            tier=routing.final_tier.value,
            response_time_ms=outcome.response_time_ms,
        )
        return outcome

    async def _secondary(self, name, call, user_data: UserData, identity: IdentityResult) -> SourceResult:
        try:
            return await call(user_data, identity)
        except Exception as e:
            logger.warning("secondary_verification_failed", source=name, error=str(e))
            return SourceResult(success=False, user_id=identity.user_id, flags=[VERIFIER_ERROR_FLAG])

    def get_metrics(self) -> dict:
        total = self._metrics["total"]
        return {
            **self._metrics,
            "completion_rate": (self._metrics["completed"] / total * 100) if total else 0.0,
            "validator": self.validator.get_metrics(),
            "router": self.router.get_metrics(),
        }
