"""
Tier Router Schemas.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Tier(StrEnum):
    FAST = "FAST"
    STANDARD = "STANDARD"
    REVIEW = "REVIEW"
    REJECT = "REJECT"

    @property
    def severity(self) -> int:
        """Higher is stricter."""
        return _TIER_SEVERITY[self]


_TIER_SEVERITY = {Tier.FAST: 0, Tier.STANDARD: 1, Tier.REVIEW: 2, Tier.REJECT: 3}


def stricter(a: Tier, b: Tier) -> Tier:
    return a if a.severity >= b.severity else b


class ReviewStatus(StrEnum):
    QUEUED = "queued"
    IN_REVIEW = "in_review"
    RESOLVED = "resolved"


class Conflict(StrEnum):
    LOW_CONSISTENCY = "low_consistency"
    IDENTITY_PAYMENT_MISMATCH = "identity_payment_mismatch"
    IDENTITY_BANK_MISMATCH = "identity_bank_mismatch"
    RISK_ASSESSMENT_CONFLICT = "risk_assessment_conflict"
    CONFIDENCE_CONFLICT = "confidence_conflict"
    SOURCE_OUTCOME_CONFLICT = "source_outcome_conflict"
    SOURCE_FLAGGED = "source_flagged"
    VALIDATION_FAILED = "validation_failed"
    CROSS_VALIDATION_ERROR = "cross_validation_error"
    ROUTING_ERROR = "routing_error"


@dataclass(frozen=True)
class TierRule:
    """
    One ordered threshold rule. A rule matches when every bound it sets holds.

    Bounds are on the 0-100 scale; None means unbounded.
    """
    tier: Tier
    min_confidence: Optional[float] = None
    max_risk: Optional[float] = None
    min_risk: Optional[float] = None
    requires_core_verified: bool = False

    def matches(self, confidence: float, risk_score: float, core_verified: bool) -> bool:
        if self.min_risk is not None and risk_score < self.min_risk:
            return False
        if self.max_risk is not None and risk_score > self.max_risk:
            return False
        if self.min_confidence is not None and confidence < self.min_confidence:
            return False
        if self.requires_core_verified and not core_verified:
            return False
        return True


class AdaptiveDecision(BaseModel):
    """Initial tier from the identity signal alone."""

    model_config = ConfigDict(frozen=True)

    tier: Tier
    confidence: float
    risk_score: float
    core_fields_verified: bool = False
    requires_payment_link_verification: bool = False
    requires_bank_link_verification: bool = False
    user_id: Optional[str] = None
    verification_id: Optional[str] = None


class RoutingDecision(BaseModel):
    """Final routing outcome. Immutable once produced."""

    model_config = ConfigDict(frozen=True)

    user_id: Optional[str] = None
    verification_id: Optional[str] = None
    initial_tier: Tier
    final_tier: Tier
    confidence: float
    risk_score: float
    conflicts: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    automated: bool = False
    requires_manual_review: bool = False
    review_id: Optional[str] = None
    error: Optional[str] = None
    decided_at: datetime = Field(default_factory=datetime.utcnow)


class ManualReviewEntry(BaseModel):
    review_id: str
    user_id: Optional[str] = None
    verification_id: Optional[str] = None
    tier: Tier
    risk_score: float
    confidence: float
    conflicts: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    status: ReviewStatus = ReviewStatus.QUEUED
    queued_at: datetime = Field(default_factory=datetime.utcnow)
    reviewer: Optional[str] = None
    started_at: Optional[datetime] = None
    resolution: Optional[str] = None
    notes: Optional[str] = None
    resolved_at: Optional[datetime] = None


class RejectionResponse(BaseModel):
    """Redacted refusal payload: no identifiers."""
    success: bool = False
    reason: str
    tier: Tier = Tier.REJECT
    confidence: float = 0.0
    risk_score: float = 100.0
    timestamp: datetime = Field(default_factory=datetime.utcnow)
