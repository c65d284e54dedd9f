"""
Adaptive Tier Strategy — ordered threshold rules, first match wins.

Default rules:
    risk >= 85                                         → REJECT
    confidence >= 90, risk <= 10, core fields verified → FAST
    confidence >= 70, risk <= 40                       → STANDARD
    otherwise                                          → REVIEW

Pure functions of (confidence, risk_score, core_verified): no history,
no clock.
"""

from typing import Sequence

from verigate.config import Settings
from verigate.errors import ConfigurationError, require_percentage
from verigate.routing.schemas import Tier, TierRule

FALLBACK_TIER = Tier.REVIEW

PAYMENT_LINK_RISK_THRESHOLD: float = 40.0
BANK_LINK_RISK_THRESHOLD: float = 20.0
EXTRA_VERIFICATION_CONFIDENCE: float = 70.0


def default_rules(
    reject_risk_floor: float = 85.0,
    fast_min_confidence: float = 90.0,
    fast_max_risk: float = 10.0,
    standard_min_confidence: float = 70.0,
    standard_max_risk: float = 40.0,
) -> list[TierRule]:
    return [
        TierRule(Tier.REJECT, min_risk=reject_risk_floor),
        TierRule(
            Tier.FAST,
            min_confidence=fast_min_confidence,
            max_risk=fast_max_risk,
            requires_core_verified=True,
        ),
        TierRule(Tier.STANDARD, min_confidence=standard_min_confidence, max_risk=standard_max_risk),
    ]


def rules_from_settings(settings: Settings) -> list[TierRule]:
    return default_rules(
        reject_risk_floor=settings.reject_risk_floor,
        fast_min_confidence=settings.fast_min_confidence,
        fast_max_risk=settings.fast_max_risk,
        standard_min_confidence=settings.standard_min_confidence,
        standard_max_risk=settings.standard_max_risk,
    )


def validate_rules(rules: Sequence[TierRule]) -> list[TierRule]:
    if not rules:
        raise ConfigurationError("At least one tier rule is required", field="rules")
    for rule in rules:
        if not isinstance(rule, TierRule):
            raise ConfigurationError(f"Invalid tier rule {rule!r}", field="rules")
        for name in ("min_confidence", "max_risk", "min_risk"):
            value = getattr(rule, name)
            if value is not None:
                require_percentage(f"{rule.tier}.{name}", value)
    return list(rules)


def evaluate_tier(
    confidence: float,
    risk_score: float,
    core_verified: bool,
    rules: Sequence[TierRule],
) -> Tier:
    for rule in rules:
        if rule.matches(confidence, risk_score, core_verified):
            return rule.tier
    return FALLBACK_TIER


def verification_needs(confidence: float, risk_score: float) -> tuple[bool, bool]:
    """(payment link required, bank link required)."""
    low_confidence = confidence < EXTRA_VERIFICATION_CONFIDENCE
    return (
        low_confidence or risk_score > PAYMENT_LINK_RISK_THRESHOLD,
        low_confidence or risk_score > BANK_LINK_RISK_THRESHOLD,
    )
