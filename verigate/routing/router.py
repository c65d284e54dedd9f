"""
Tier Router — initial and final service tier for a verification attempt.

Two passes:
1. apply_adaptive_strategy: identity signal alone → initial tier
2. route_to_tier: after cross-validation, detect conflicts between the
   initial assessment and the cross-validated one, re-apply the rules to
   the combined metrics and floor the tier at REVIEW on any conflict.
   An initial REJECT is final; corroboration never relaxes it.

REVIEW outcomes are queued for a human. Routing never raises: an internal
error yields REVIEW (REJECT stays REJECT) with a routing_error conflict.
"""

import threading
from typing import Optional, Sequence, Union

import structlog

from verigate.config import Settings
from verigate.errors import ErrorCode, require_percentage, require_unit_interval
from verigate.privacy import mask_pii
from verigate.routing import strategy
from verigate.routing.review_queue import ManualReviewQueue
from verigate.routing.schemas import (
    AdaptiveDecision,
    Conflict,
    ManualReviewEntry,
    RejectionResponse,
    RoutingDecision,
    Tier,
    TierRule,
    stricter,
)
from verigate.validation.schemas import CrossValidationResult, IdentityResult

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

LOW_CONSISTENCY_THRESHOLD: float = 0.5
PAIR_MISMATCH_THRESHOLD: float = 0.6
RISK_DIVERGENCE_THRESHOLD: float = 30.0
CONFIDENCE_DIVERGENCE_THRESHOLD: float = 25.0

# Every conflict floors the final tier here.
CONFLICT_FLOOR = Tier.REVIEW


class TierRouter:
    """Adaptive tiering, conflict detection and manual review hand-off."""

    def __init__(
        self,
        rules: Optional[Sequence[TierRule]] = None,
        review_queue: Optional[ManualReviewQueue] = None,
        low_consistency_threshold: float = LOW_CONSISTENCY_THRESHOLD,
        pair_mismatch_threshold: float = PAIR_MISMATCH_THRESHOLD,
        risk_divergence_threshold: float = RISK_DIVERGENCE_THRESHOLD,
        confidence_divergence_threshold: float = CONFIDENCE_DIVERGENCE_THRESHOLD,
    ):
        self.rules = strategy.validate_rules(rules if rules is not None else strategy.default_rules())
        self.review_queue = review_queue if review_queue is not None else ManualReviewQueue()
        self.low_consistency_threshold = require_unit_interval(
            "low_consistency_threshold", low_consistency_threshold
        )
        self.pair_mismatch_threshold = require_unit_interval(
            "pair_mismatch_threshold", pair_mismatch_threshold
        )
        self.risk_divergence_threshold = require_percentage(
            "risk_divergence_threshold", risk_divergence_threshold
        )
        self.confidence_divergence_threshold = require_percentage(
            "confidence_divergence_threshold", confidence_divergence_threshold
        )

        self._metrics = {
            "total_routed": 0,
            "with_conflicts": 0,
            "routing_errors": 0,
            "tiers": {t.value: 0 for t in Tier},
        }
        self._metrics_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "TierRouter":
        return cls(
            rules=strategy.rules_from_settings(settings),
            low_consistency_threshold=settings.low_consistency_threshold,
            pair_mismatch_threshold=settings.pair_mismatch_threshold,
            risk_divergence_threshold=settings.risk_divergence_threshold,
            confidence_divergence_threshold=settings.confidence_divergence_threshold,
            **kwargs,
        )

    # ── Initial tier ──────────────────────────────────────────────────────

    def apply_adaptive_strategy(self, identity: IdentityResult) -> AdaptiveDecision:
        """Initial tier from the identity signal. Same inputs, same tier."""
        confidence = identity.confidence
        risk = identity.risk_score
        core_verified = identity.core_fields_verified
        needs_payment, needs_bank = strategy.verification_needs(confidence, risk)

        return AdaptiveDecision(
            tier=strategy.evaluate_tier(confidence, risk, core_verified, self.rules),
            confidence=confidence,
            risk_score=risk,
            core_fields_verified=core_verified,
            requires_payment_link_verification=needs_payment,
            requires_bank_link_verification=needs_bank,
            user_id=identity.user_id,
            verification_id=identity.verification_id,
        )

    # ── Final tier ────────────────────────────────────────────────────────

    def detect_conflicts(
        self,
        final_result: CrossValidationResult,
        approval: AdaptiveDecision,
    ) -> tuple[list[Conflict], list[str]]:
        """
        Compare the cross-validated outcome with the initial assessment.

        Returns:
            (conflicts, warnings)
        """
        conflicts: list[Conflict] = []
        warnings: list[str] = []

        if not final_result.success:
            conflicts.append(Conflict.CROSS_VALIDATION_ERROR)
            if final_result.error:
                warnings.append(f"cross-validation error: {final_result.error}")
            return conflicts, warnings

        scores = final_result.cross_validation
        validation = final_result.validation

        if scores.comparisons and scores.overall_consistency < self.low_consistency_threshold:
            conflicts.append(Conflict.LOW_CONSISTENCY)
        if scores.identity_payment is not None and scores.identity_payment < self.pair_mismatch_threshold:
            conflicts.append(Conflict.IDENTITY_PAYMENT_MISMATCH)
        if scores.identity_bank is not None and scores.identity_bank < self.pair_mismatch_threshold:
            conflicts.append(Conflict.IDENTITY_BANK_MISMATCH)

        if abs(approval.risk_score - validation.risk_score) > self.risk_divergence_threshold:
            conflicts.append(Conflict.RISK_ASSESSMENT_CONFLICT)
        if abs(approval.confidence - validation.confidence) > self.confidence_divergence_threshold:
            conflicts.append(Conflict.CONFIDENCE_CONFLICT)

        supplied = final_result.supplied.count()
        succeeded = final_result.sources.count()
        if 0 < succeeded < supplied:
            conflicts.append(Conflict.SOURCE_OUTCOME_CONFLICT)

        if final_result.source_flags:
            conflicts.append(Conflict.SOURCE_FLAGGED)
            for source, flags in final_result.source_flags.items():
                warnings.append(f"{source} flagged: {', '.join(flags)}")

        if not validation.passed:
            conflicts.append(Conflict.VALIDATION_FAILED)
            warnings.extend(validation.issues)

        if not final_result.supplied.payment_link and approval.requires_payment_link_verification:
            warnings.append("payment link verification was required but not supplied")
        if not final_result.supplied.bank_link and approval.requires_bank_link_verification:
            warnings.append("bank link verification was required but not supplied")

        return conflicts, warnings

    def route_to_tier(
        self,
        final_result: CrossValidationResult,
        approval: AdaptiveDecision,
    ) -> RoutingDecision:
        """Final routing decision. Never raises."""
        try:
            decision = self._route(final_result, approval)
        except Exception as e:
            self._bump_error()
            logger.error(
                "routing_failed",
                verification_id=getattr(final_result, "verification_id", None),
                error=str(e),
            )
            initial_tier = getattr(approval, "tier", Tier.REVIEW)
            final_tier = stricter(Tier.REVIEW, initial_tier)
            decision = RoutingDecision(
                user_id=getattr(approval, "user_id", None),
                verification_id=getattr(final_result, "verification_id", None),
                initial_tier=initial_tier,
                final_tier=final_tier,
                confidence=0.0,
                risk_score=100.0,
                conflicts=(Conflict.ROUTING_ERROR.value,),
                requires_manual_review=final_tier == Tier.REVIEW,
                error=str(e),
            )

        if decision.final_tier == Tier.REVIEW:
            entry = self.queue_manual_review(decision)
            decision = decision.model_copy(update={"review_id": entry.review_id})

        self._record(decision)
        logger.info(
            "routing_decided",
            user=mask_pii(decision.user_id),
            verification_id=decision.verification_id,
            initial_tier=decision.initial_tier.value,
            final_tier=decision.final_tier.value,
            conflicts=list(decision.conflicts),
            automated=decision.automated,
        )
        return decision

    def _route(
        self,
        final_result: CrossValidationResult,
        approval: AdaptiveDecision,
    ) -> RoutingDecision:
        conflicts, warnings = self.detect_conflicts(final_result, approval)
        validation = final_result.validation

        confidence = round((approval.confidence + validation.confidence) / 2, 2)
        risk = round((approval.risk_score + validation.risk_score) / 2, 2)

        tier = strategy.evaluate_tier(confidence, risk, approval.core_fields_verified, self.rules)
        if approval.tier == Tier.REJECT:
            tier = Tier.REJECT
        if conflicts:
            tier = stricter(tier, CONFLICT_FLOOR)

        requires_review = tier == Tier.REVIEW
        return RoutingDecision(
            user_id=final_result.user_id or approval.user_id,
            verification_id=final_result.verification_id,
            initial_tier=approval.tier,
            final_tier=tier,
            confidence=confidence,
            risk_score=risk,
            conflicts=tuple(c.value for c in conflicts),
            warnings=tuple(warnings),
            automated=not conflicts and not requires_review,
            requires_manual_review=requires_review,
        )

    # ── Review hand-off ───────────────────────────────────────────────────

    def queue_manual_review(self, routing: RoutingDecision) -> ManualReviewEntry:
        return self.review_queue.enqueue(routing)

    def create_rejection_response(
        self,
        result: Union[CrossValidationResult, RoutingDecision, AdaptiveDecision, None],
        reason_code: Union[ErrorCode, str],
    ) -> RejectionResponse:
        """Redacted refusal: reason, tier and scores only, no identifiers."""
        confidence, risk = 0.0, 100.0
        if isinstance(result, CrossValidationResult):
            confidence, risk = result.validation.confidence, result.validation.risk_score
        elif result is not None:
            confidence, risk = result.confidence, result.risk_score

        reason = reason_code.value if isinstance(reason_code, ErrorCode) else str(reason_code)
        logger.info("rejection_issued", reason=reason, risk_score=risk)
        return RejectionResponse(reason=reason, confidence=confidence, risk_score=risk)

    # ── Metrics ───────────────────────────────────────────────────────────

    def _record(self, decision: RoutingDecision) -> None:
        with self._metrics_lock:
            self._metrics["total_routed"] += 1
            self._metrics["tiers"][decision.final_tier.value] += 1
            if decision.conflicts:
                self._metrics["with_conflicts"] += 1

    def _bump_error(self) -> None:
        with self._metrics_lock:
            self._metrics["routing_errors"] += 1

    def get_metrics(self) -> dict:
        with self._metrics_lock:
            total = self._metrics["total_routed"]
            return {
                "total_routed": total,
                "routing_errors": self._metrics["routing_errors"],
                "tiers": dict(self._metrics["tiers"]),
                "conflict_rate": (self._metrics["with_conflicts"] / total) if total else 0.0,
                "review_queue_size": len(self.review_queue),
            }
