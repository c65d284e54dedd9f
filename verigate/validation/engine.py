"""
Cross-Source Validator.

Compares up to three independently collected views of a user:

    identity ──┬── payment link
               └── bank link ──── payment link

Pipeline per call:
1. Derive a deterministic verification id from the inputs
2. Return the cached Verification Record if one exists
3. Score each comparable pair (weighted fuzzy field similarity)
4. Aggregate into overall consistency (pair-weighted mean)
5. Confidence from source coverage + consistency, risk from gaps
6. Pass/fail against the consistency and critical-pair thresholds

Absent sources lower confidence but never fail validation on their own.
A source the caller deliberately did not request (unrequested) and did not
supply is left out of coverage and missing-source risk.
Any exception while scoring becomes success=False with the error message.
"""

import hashlib
import json
import threading
import time
from typing import Callable, Iterable, Optional

import structlog

from verigate.config import Settings
from verigate.errors import require_positive, require_unit_interval
from verigate.privacy import mask_pii
from verigate.validation import matching
from verigate.validation.prescreen import PreScreener
from verigate.validation.schemas import (
    CrossValidationResult,
    CrossValidationScores,
    IdentityResult,
    PreScreenResult,
    SourceName,
    SourcePresence,
    SourceResult,
    UserData,
    ValidationOutcome,
    VerificationRecord,
    VerificationStatus,
)

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

CONSISTENCY_THRESHOLD: float = 0.8
CRITICAL_PAIR_THRESHOLD: float = 0.4
VERIFICATION_EXPIRY_SECONDS: float = 86400.0

FIELD_WEIGHTS: dict[str, float] = {
    "email": 0.35,
    "phone": 0.40,
    "name": 0.25,
    "account": 0.35,
}

PAIR_WEIGHTS: dict[str, float] = {
    "identity_payment": 0.4,
    "identity_bank": 0.4,
    "payment_bank": 0.2,
}

TOTAL_SOURCES = 3
LOW_CONSISTENCY_RISK = 30.0
MISSING_SOURCE_RISK = 15.0
LOW_CONFIDENCE_RISK = 20.0
FLAGGED_SOURCE_RISK = 10.0
LOW_CONFIDENCE = 70.0


def _canonical_source(source: Optional[SourceResult]) -> Optional[dict]:
    if source is None:
        return None
    return source.model_dump(mode="json", exclude_none=True)


def verification_id_for(
    primary: IdentityResult,
    payment_link: Optional[SourceResult],
    bank_link: Optional[SourceResult],
    unrequested: frozenset[SourceName] = frozenset(),
) -> str:
    """Deterministic id: identical inputs always map to the same record."""
    inputs = {
        "identity": _canonical_source(primary),
        "payment_link": _canonical_source(payment_link),
        "bank_link": _canonical_source(bank_link),
    }
    if unrequested:
        inputs["unrequested"] = sorted(s.value for s in unrequested)
    payload = json.dumps(
        inputs,
        sort_keys=True,
        separators=(",", ":"),
    )
    return "ver_" + hashlib.sha256(payload.encode("utf-8")).hexdigest()[:24]


class CrossSourceValidator:
    """Pre-screening and multi-source cross-validation with a record cache."""

    def __init__(
        self,
        consistency_threshold: float = CONSISTENCY_THRESHOLD,
        critical_pair_threshold: float = CRITICAL_PAIR_THRESHOLD,
        verification_expiry_seconds: float = VERIFICATION_EXPIRY_SECONDS,
        field_weights: Optional[dict[str, float]] = None,
        pair_weights: Optional[dict[str, float]] = None,
        prescreener: Optional[PreScreener] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.consistency_threshold = require_unit_interval(
            "consistency_threshold", consistency_threshold
        )
        self.critical_pair_threshold = require_unit_interval(
            "critical_pair_threshold", critical_pair_threshold
        )
        self.verification_expiry = require_positive(
            "verification_expiry_seconds", verification_expiry_seconds
        )
        self.field_weights = {**FIELD_WEIGHTS, **(field_weights or {})}
        self.pair_weights = {**PAIR_WEIGHTS, **(pair_weights or {})}
        for name, weight in {**self.field_weights, **self.pair_weights}.items():
            require_unit_interval(f"weight:{name}", weight)
        self.prescreener = prescreener or PreScreener(clock=clock)
        self._clock = clock

        self._records: dict[str, VerificationRecord] = {}
        self._records_lock = threading.Lock()
        self._metrics = {
            "total_validations": 0,
            "successful_validations": 0,
            "failed_validations": 0,
            "errors": 0,
            "cache_hits": 0,
        }
        self._metrics_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "CrossSourceValidator":
        clock = kwargs.get("clock", time.time)
        kwargs.setdefault("prescreener", PreScreener(
            max_attempts=settings.prescreen_max_attempts,
            window_seconds=settings.prescreen_window_seconds,
            clock=clock,
            hash_salt=settings.hash_salt,
        ))
        return cls(
            consistency_threshold=settings.consistency_threshold,
            critical_pair_threshold=settings.critical_pair_threshold,
            verification_expiry_seconds=settings.verification_expiry_seconds,
            **kwargs,
        )

    def _bump(self, metric: str) -> None:
        with self._metrics_lock:
            self._metrics[metric] += 1

    # ── Pre-screen ────────────────────────────────────────────────────────

    def pre_screen(self, user_data: UserData | dict) -> PreScreenResult:
        """Screen raw user data. Never raises."""
        try:
            if not isinstance(user_data, UserData):
                user_data = UserData.model_validate(user_data)
            return self.prescreener.screen(user_data)
        except Exception as e:
            logger.error("pre_screen_failed", error=str(e))
            return PreScreenResult(passed=False, score=0.0, issues=[f"INTERNAL_ERROR: {e}"])

    # ── Pairwise scoring ──────────────────────────────────────────────────

    def _pair_score(
        self,
        left: SourceResult,
        right: SourceResult,
        include_account: bool = False,
    ) -> tuple[Optional[float], dict[str, float]]:
        """Weighted mean over fields present on both sides; None if none are."""
        matches: dict[str, float] = {}
        if left.email and right.email:
            matches["email"] = matching.fuzzy_match(left.email, right.email)
        if left.phone and right.phone:
            matches["phone"] = matching.compare_phone_numbers(left.phone, right.phone)
        if left.name and right.name:
            matches["name"] = matching.fuzzy_match(left.name, right.name)
        if include_account and left.account_number and right.accounts:
            matches["account"] = matching.account_match(left.account_number, right.accounts)

        total_weight = sum(self.field_weights[f] for f in matches)
        if not matches or total_weight <= 0:
            return None, matches
        score = sum(self.field_weights[f] * s for f, s in matches.items()) / total_weight
        return round(score, 4), matches

    def _aggregate(self, scores: CrossValidationScores) -> float:
        pairs = {
            "identity_payment": scores.identity_payment,
            "identity_bank": scores.identity_bank,
            "payment_bank": scores.payment_bank,
        }
        available = {k: v for k, v in pairs.items() if v is not None}
        total_weight = sum(self.pair_weights[k] for k in available)
        if not available or total_weight <= 0:
            # Nothing comparable: nothing disagrees.
            return 1.0
        return round(sum(self.pair_weights[k] * v for k, v in available.items()) / total_weight, 4)

    # ── Cross-validation ──────────────────────────────────────────────────

    def cross_validate_all(
        self,
        primary: IdentityResult,
        payment_link: Optional[SourceResult] = None,
        bank_link: Optional[SourceResult] = None,
        unrequested: Iterable[SourceName | str] = (),
    ) -> CrossValidationResult:
        """
        Cross-validate the identity result against the optional secondary sources.

        unrequested names secondary sources the caller chose not to consult;
        when they are also not supplied they do not count as missing.
        """
        verification_id = "ver_unavailable"
        user_id = getattr(primary, "user_id", None)
        try:
            skipped = frozenset(SourceName(s) for s in unrequested) - {SourceName.IDENTITY}
            skipped = frozenset(
                s for s in skipped
                if (payment_link if s == SourceName.PAYMENT_LINK else bank_link) is None
            )
            verification_id = verification_id_for(primary, payment_link, bank_link, skipped)

            cached = self._cached(verification_id)
            if cached is not None:
                self._bump("cache_hits")
                return cached.result

            self._bump("total_validations")
            result = self._evaluate(verification_id, primary, payment_link, bank_link, skipped)
        except Exception as e:
            self._bump("errors")
            logger.error(
                "cross_validation_failed",
                verification_id=verification_id,
                error=str(e),
            )
            return CrossValidationResult(
                success=False,
                verification_id=verification_id,
                user_id=user_id,
                validation=ValidationOutcome(passed=False, risk_score=100.0, issues=["INTERNAL_ERROR"]),
                error=str(e),
            )

        self._bump("successful_validations" if result.validation.passed else "failed_validations")
        with self._records_lock:
            existing = self._records.get(verification_id)
            if existing is not None:
                return existing.result
            self._records[verification_id] = VerificationRecord(
                verification_id=verification_id,
                user_id=result.user_id,
                result=result,
                created_at=self._clock(),
            )

        logger.info(
            "cross_validation_completed",
            verification_id=verification_id,
            user=mask_pii(result.user_id),
            passed=result.validation.passed,
            consistency=result.cross_validation.overall_consistency,
            confidence=result.validation.confidence,
            risk_score=result.validation.risk_score,
        )
        return result

    def _evaluate(
        self,
        verification_id: str,
        primary: IdentityResult,
        payment_link: Optional[SourceResult],
        bank_link: Optional[SourceResult],
        skipped: frozenset[SourceName] = frozenset(),
    ) -> CrossValidationResult:
        supplied = SourcePresence(
            identity=primary is not None,
            payment_link=payment_link is not None,
            bank_link=bank_link is not None,
        )
        present = SourcePresence(
            identity=bool(primary and primary.success),
            payment_link=bool(payment_link and payment_link.success),
            bank_link=bool(bank_link and bank_link.success),
        )

        scores = CrossValidationScores()
        if present.identity and present.payment_link:
            scores.identity_payment, scores.field_matches["identity_payment"] = self._pair_score(
                primary, payment_link
            )
        if present.identity and present.bank_link:
            scores.identity_bank, scores.field_matches["identity_bank"] = self._pair_score(
                primary, bank_link, include_account=True
            )
        if present.payment_link and present.bank_link:
            scores.payment_bank, scores.field_matches["payment_bank"] = self._pair_score(
                payment_link, bank_link
            )
        pair_scores = [
            s for s in (scores.identity_payment, scores.identity_bank, scores.payment_bank)
            if s is not None
        ]
        scores.comparisons = len(pair_scores)
        scores.overall_consistency = self._aggregate(scores)

        source_flags = {
            name.value: list(source.flags)
            for name, source in (
                (SourceName.IDENTITY, primary),
                (SourceName.PAYMENT_LINK, payment_link),
                (SourceName.BANK_LINK, bank_link),
            )
            if source is not None and source.flags
        }

        expected = TOTAL_SOURCES - len(skipped)
        coverage = present.count() / expected
        confidence = round(100.0 * (0.5 * coverage + 0.5 * scores.overall_consistency), 2)

        risk = 0.0
        if scores.overall_consistency < 0.5:
            risk += LOW_CONSISTENCY_RISK
        risk += MISSING_SOURCE_RISK * (expected - present.count())
        if confidence < LOW_CONFIDENCE:
            risk += LOW_CONFIDENCE_RISK
        risk += FLAGGED_SOURCE_RISK * len(source_flags)
        risk = min(100.0, risk)

        issues: list[str] = []
        if not present.identity:
            issues.append("IDENTITY_NOT_VERIFIED")
        if scores.overall_consistency < self.consistency_threshold:
            issues.append("INCONSISTENT_SOURCES")
        critical = [s for s in pair_scores if s < self.critical_pair_threshold]
        if critical:
            issues.append("CRITICAL_PAIR_MISMATCH")
        if source_flags:
            issues.append("SOURCE_FLAGGED")

        passed = (
            present.identity
            and scores.overall_consistency >= self.consistency_threshold
            and not critical
        )

        return CrossValidationResult(
            success=True,
            verification_id=verification_id,
            user_id=primary.user_id,
            validation=ValidationOutcome(
                passed=passed,
                confidence=confidence,
                risk_score=risk,
                issues=issues,
            ),
            sources=present,
            supplied=supplied,
            cross_validation=scores,
            source_flags=source_flags,
            unrequested=sorted(s.value for s in skipped),
        )

    # ── Records ───────────────────────────────────────────────────────────

    def _cached(self, verification_id: str) -> Optional[VerificationRecord]:
        now = self._clock()
        with self._records_lock:
            record = self._records.get(verification_id)
            if record is None:
                return None
            if now - record.created_at > self.verification_expiry:
                del self._records[verification_id]
                return None
            return record

    def get_verification_status(self, verification_id: str) -> VerificationStatus:
        record = self._cached(verification_id)
        if record is None:
            return VerificationStatus(
                found=False,
                verification_id=verification_id,
                error="Verification not found",
            )
        validation = record.result.validation
        return VerificationStatus(
            found=True,
            verification_id=verification_id,
            user_id=mask_pii(record.user_id),
            passed=validation.passed,
            confidence=validation.confidence,
            risk_score=validation.risk_score,
            created_at=record.created_at,
        )

    def cleanup_expired(self) -> int:
        """Drop expired Verification Records and empty attempt ledgers."""
        now = self._clock()
        with self._records_lock:
            expired = [
                vid for vid, record in self._records.items()
                if now - record.created_at > self.verification_expiry
            ]
            for vid in expired:
                del self._records[vid]
        self.prescreener.ledger.prune(now)
        if expired:
            logger.info("verification_records_expired", count=len(expired))
        return len(expired)

    def get_metrics(self) -> dict:
        with self._metrics_lock:
            metrics = dict(self._metrics)
        total = metrics["total_validations"]
        with self._records_lock:
            cached = len(self._records)
        return {
            **metrics,
            "success_rate": (metrics["successful_validations"] / total * 100) if total else 0.0,
            "cached_verifications": cached,
            "tracked_users": len(self.prescreener.ledger),
        }

    def health_check(self) -> dict:
        return {
            "status": "healthy",
            "metrics": self.get_metrics(),
            "config": {
                "consistency_threshold": self.consistency_threshold,
                "critical_pair_threshold": self.critical_pair_threshold,
                "verification_expiry_seconds": self.verification_expiry,
            },
        }
