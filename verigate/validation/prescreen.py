"""
Pre-Screen — cheap checks on raw user data before any verifier is called.

Score starts at 100 and every triggered check deducts a fixed penalty, so
several failures compound. Only present-but-invalid fields are penalized;
absent optional fields are skipped. passed iff nothing was deducted.
"""

import re
import threading
import time
from collections import deque
from typing import Callable, Iterable, Optional

import structlog

from verigate.errors import require_positive
from verigate.privacy import hash_identifier, mask_pii
from verigate.validation.schemas import PreScreenIssue, PreScreenResult, UserData

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

PENALTIES: dict[PreScreenIssue, float] = {
    PreScreenIssue.INVALID_EMAIL: 30.0,
    PreScreenIssue.INVALID_PHONE: 25.0,
    PreScreenIssue.INVALID_USER_ID: 20.0,
    PreScreenIssue.SUSPICIOUS_PATTERN: 40.0,
    PreScreenIssue.VELOCITY_LIMIT_EXCEEDED: 50.0,
}

DENYLIST: tuple[str, ...] = ("test", "demo", "fake", "temp", "12345", "00000")

MAX_ATTEMPTS: int = 5
ATTEMPT_WINDOW_SECONDS: float = 3600.0

_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE = re.compile(r"^\+?[\d\s\-()]+$")
_USER_ID = re.compile(r"^[A-Za-z0-9_.@-]{3,128}$")
MIN_PHONE_DIGITS = 10


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL.match(email))


def is_valid_phone(phone: str) -> bool:
    return bool(_PHONE.match(phone)) and sum(c.isdigit() for c in phone) >= MIN_PHONE_DIGITS


def is_valid_user_id(user_id: Optional[str]) -> bool:
    return bool(user_id) and bool(_USER_ID.match(user_id))


class AttemptLedger:
    """Per-user sliding window of pre-screen attempt timestamps (hashed keys)."""

    def __init__(self, window_seconds: float = ATTEMPT_WINDOW_SECONDS):
        self.window_seconds = window_seconds
        self._attempts: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    def record(self, user_key: str, now: float) -> int:
        """Record an attempt; return how many earlier attempts are still in the window."""
        with self._lock:
            attempts = self._attempts.setdefault(user_key, deque())
            cutoff = now - self.window_seconds
            while attempts and attempts[0] <= cutoff:
                attempts.popleft()
            prior = len(attempts)
            attempts.append(now)
            return prior

    def prune(self, now: float) -> int:
        removed = 0
        cutoff = now - self.window_seconds
        with self._lock:
            for key in list(self._attempts):
                kept = deque(t for t in self._attempts[key] if t > cutoff)
                if kept:
                    self._attempts[key] = kept
                else:
                    del self._attempts[key]
                    removed += 1
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._attempts)


class PreScreener:
    """Field format, denylist and velocity checks."""

    def __init__(
        self,
        max_attempts: int = MAX_ATTEMPTS,
        window_seconds: float = ATTEMPT_WINDOW_SECONDS,
        denylist: Iterable[str] = DENYLIST,
        penalties: Optional[dict[PreScreenIssue, float]] = None,
        clock: Callable[[], float] = time.time,
        hash_salt: Optional[str] = None,
    ):
        self.max_attempts = int(require_positive("max_attempts", max_attempts))
        require_positive("window_seconds", window_seconds)
        self.denylist = tuple(d.lower() for d in denylist)
        self.penalties = {**PENALTIES, **(penalties or {})}
        # Every triggered check costs score.
        for issue, penalty in self.penalties.items():
            require_positive(f"penalty:{issue}", penalty)
        self.ledger = AttemptLedger(window_seconds)
        self._clock = clock
        self._salt = hash_salt

    def has_suspicious_patterns(self, user_data: UserData) -> bool:
        haystack = " ".join(
            v for v in (user_data.email, user_data.phone, user_data.user_id) if v
        ).lower()
        return any(token in haystack for token in self.denylist)

    def screen(self, user_data: UserData) -> PreScreenResult:
        started = time.perf_counter()
        issues: list[PreScreenIssue] = []

        if user_data.email is not None and not is_valid_email(user_data.email):
            issues.append(PreScreenIssue.INVALID_EMAIL)

        if user_data.phone is not None and not is_valid_phone(user_data.phone):
            issues.append(PreScreenIssue.INVALID_PHONE)

        if not is_valid_user_id(user_data.user_id):
            issues.append(PreScreenIssue.INVALID_USER_ID)

        if self.has_suspicious_patterns(user_data):
            issues.append(PreScreenIssue.SUSPICIOUS_PATTERN)

        if user_data.user_id:
            prior = self.ledger.record(
                hash_identifier(user_data.user_id, self._salt), self._clock()
            )
            if prior >= self.max_attempts:
                issues.append(PreScreenIssue.VELOCITY_LIMIT_EXCEEDED)

        score = max(0.0, 100.0 - sum(self.penalties[i] for i in issues))
        result = PreScreenResult(
            passed=score == 100.0,
            score=score,
            issues=[i.value for i in issues],
            validation_time_ms=round((time.perf_counter() - started) * 1000, 3),
        )

        logger.info(
            "pre_screen_completed",
            user=mask_pii(user_data.user_id),
            passed=result.passed,
            score=score,
            issues=result.issues,
        )
        return result
