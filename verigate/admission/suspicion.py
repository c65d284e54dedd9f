"""
Suspicious Pattern Detection.

Runs on every admission check, independently of blocking. Each device
fingerprint keeps a bounded Suspicion History (oldest evicted first)
holding only hashed identifiers.

Patterns and default weights:
- IP_ROTATION_DETECTED       (+50) distinct IPs per device in the rotation window
- USER_ROTATION_DETECTED     (+40) distinct users per device in the rotation window
- BOT_LIKE_PATTERN           (+45) near-constant inter-arrival intervals
- GEOGRAPHIC_ANOMALY         (+35) too many distinct declared locations
- MULTI_SCOPE_HIGH_VELOCITY  (+30) several scopes running hot at once
"""

import statistics
import threading
from collections import deque
from typing import Mapping, Optional

import structlog

from verigate.admission.schemas import SuspicionEvent, SuspicionPattern, SuspicionResult
from verigate.errors import ConfigurationError, require_non_negative, require_positive

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

HISTORY_SIZE: int = 50
ROTATION_WINDOW_SECONDS: float = 3600.0
GEO_WINDOW_SECONDS: float = 86400.0
IP_ROTATION_THRESHOLD: int = 3
USER_ROTATION_THRESHOLD: int = 2
GEO_REGION_THRESHOLD: int = 2
BOT_MIN_SAMPLES: int = 5
BOT_MAX_VARIATION: float = 0.1
HIGH_VELOCITY_COUNT: int = 10
HIGH_VELOCITY_MIN_SCOPES: int = 2
MAX_RISK_SCORE: float = 100.0

DEFAULT_WEIGHTS: dict[SuspicionPattern, float] = {
    SuspicionPattern.IP_ROTATION: 50.0,
    SuspicionPattern.USER_ROTATION: 40.0,
    SuspicionPattern.BOT_LIKE: 45.0,
    SuspicionPattern.GEOGRAPHIC_ANOMALY: 35.0,
    SuspicionPattern.MULTI_SCOPE_HIGH_VELOCITY: 30.0,
}


def is_bot_like(timestamps: list[float], min_samples: int, max_variation: float) -> bool:
    """
    Near-constant cadence check.

    Coefficient of variation (pstdev / mean) of the intervals between
    consecutive timestamps must be at most max_variation.
    """
    if len(timestamps) < min_samples:
        return False
    ordered = sorted(timestamps)
    intervals = [b - a for a, b in zip(ordered, ordered[1:])]
    mean = statistics.fmean(intervals)
    if mean <= 0:
        return False
    return statistics.pstdev(intervals) / mean <= max_variation


def _pattern_weights(weights: Mapping) -> dict[SuspicionPattern, float]:
    """Normalize pattern keys given as enum members or their string values."""
    normalized: dict[SuspicionPattern, float] = {}
    for pattern, weight in weights.items():
        try:
            normalized[SuspicionPattern(pattern)] = float(weight)
        except (TypeError, ValueError):
            raise ConfigurationError(f"Invalid suspicion weight {pattern!r}", field="weights")
    return normalized


class SuspicionDetector:
    """Per-device behavioural pattern matcher."""

    def __init__(
        self,
        history_size: int = HISTORY_SIZE,
        rotation_window_seconds: float = ROTATION_WINDOW_SECONDS,
        geo_window_seconds: float = GEO_WINDOW_SECONDS,
        ip_rotation_threshold: int = IP_ROTATION_THRESHOLD,
        user_rotation_threshold: int = USER_ROTATION_THRESHOLD,
        geo_region_threshold: int = GEO_REGION_THRESHOLD,
        bot_min_samples: int = BOT_MIN_SAMPLES,
        bot_max_variation: float = BOT_MAX_VARIATION,
        high_velocity_count: int = HIGH_VELOCITY_COUNT,
        weights: Optional[Mapping[SuspicionPattern | str, float]] = None,
    ):
        self.history_size = int(require_positive("history_size", history_size))
        self.rotation_window = require_positive("rotation_window_seconds", rotation_window_seconds)
        self.geo_window = require_positive("geo_window_seconds", geo_window_seconds)
        self.ip_rotation_threshold = require_non_negative("ip_rotation_threshold", ip_rotation_threshold)
        self.user_rotation_threshold = require_non_negative(
            "user_rotation_threshold", user_rotation_threshold
        )
        self.geo_region_threshold = require_non_negative("geo_region_threshold", geo_region_threshold)
        if bot_min_samples < 3:
            raise ConfigurationError("bot_min_samples must be at least 3", field="bot_min_samples")
        self.bot_min_samples = bot_min_samples
        self.bot_max_variation = require_non_negative("bot_max_variation", bot_max_variation)
        self.high_velocity_count = require_non_negative("high_velocity_count", high_velocity_count)
        self.weights = {**DEFAULT_WEIGHTS, **_pattern_weights(weights or {})}
        if any(w < 0 for w in self.weights.values()):
            raise ConfigurationError("Suspicion weights must not be negative", field="weights")

        self._histories: dict[str, deque[SuspicionEvent]] = {}
        self._lock = threading.Lock()

    def observe(
        self,
        device_hash: Optional[str],
        event: SuspicionEvent,
        scope_counts: Optional[list[int]] = None,
    ) -> SuspicionResult:
        """Record the event in the device history and evaluate all patterns."""
        matched: list[SuspicionPattern] = []

        hot_scopes = [c for c in (scope_counts or []) if c > self.high_velocity_count]
        if len(hot_scopes) >= HIGH_VELOCITY_MIN_SCOPES:
            matched.append(SuspicionPattern.MULTI_SCOPE_HIGH_VELOCITY)

        if device_hash is not None:
            with self._lock:
                history = self._histories.get(device_hash)
                if history is None:
                    history = deque(maxlen=self.history_size)
                    self._histories[device_hash] = history
                history.append(event)
                snapshot = list(history)
            matched.extend(self._device_patterns(snapshot, event.timestamp))

        risk = min(MAX_RISK_SCORE, sum(self.weights[p] for p in matched))
        return SuspicionResult(
            suspicious=bool(matched),
            patterns=[p.value for p in matched],
            risk_score=risk,
        )

    def _device_patterns(self, history: list[SuspicionEvent], now: float) -> list[SuspicionPattern]:
        matched: list[SuspicionPattern] = []
        recent = [e for e in history if now - e.timestamp <= self.rotation_window]

        ips = {e.ip_hash for e in recent if e.ip_hash}
        if len(ips) > self.ip_rotation_threshold:
            matched.append(SuspicionPattern.IP_ROTATION)

        users = {e.user_hash for e in recent if e.user_hash}
        if len(users) > self.user_rotation_threshold:
            matched.append(SuspicionPattern.USER_ROTATION)

        if is_bot_like([e.timestamp for e in recent], self.bot_min_samples, self.bot_max_variation):
            matched.append(SuspicionPattern.BOT_LIKE)

        regions = {
            e.location.lower()
            for e in history
            if e.location and now - e.timestamp <= self.geo_window
        }
        if len(regions) > self.geo_region_threshold:
            matched.append(SuspicionPattern.GEOGRAPHIC_ANOMALY)

        return matched

    def prune(self, now: float) -> int:
        """Drop device histories with nothing inside the longest window."""
        horizon = max(self.rotation_window, self.geo_window)
        removed = 0
        with self._lock:
            for device_hash in list(self._histories):
                history = self._histories[device_hash]
                kept = deque(
                    (e for e in history if now - e.timestamp <= horizon),
                    maxlen=self.history_size,
                )
                if kept:
                    self._histories[device_hash] = kept
                else:
                    del self._histories[device_hash]
                    removed += 1
        return removed

    def history_for(self, device_hash: str) -> list[SuspicionEvent]:
        with self._lock:
            return list(self._histories.get(device_hash, ()))

    @property
    def tracked_devices(self) -> int:
        with self._lock:
            return len(self._histories)
