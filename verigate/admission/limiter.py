"""
Admission Limiter — multi-dimensional sliding-window rate limiting.

Dimensions: ip, userId, device fingerprint. Each present dimension is
checked against its endpoint-class scope (e.g. ip:funding) and, for
non-global classes, its global scope (ip:global). Absent dimensions are
skipped; a request with no dimensions is always allowed.

A breach refuses the request with RATE_LIMIT_EXCEEDED and blocks the
offending (dimension, value, endpoint class) for the scope's cooldown.
Manual blocks cover every endpoint class.

Suspicion detection runs on every check and never refuses by itself.
"""

import math
import threading
import time
from collections import deque
from dataclasses import asdict
from typing import Callable, Optional

import structlog

from verigate.admission.limits import (
    DEFAULT_LIMITS,
    LimitTable,
    apply_overrides,
    categorize_endpoint,
    validate_limits,
)
from verigate.admission.schemas import (
    AdmissionRequest,
    AdmissionResult,
    BlockEntry,
    BlockStatus,
    Dimension,
    EndpointClass,
    LimitRule,
    PruneReport,
    ScopeCheck,
    ScopeKey,
    SuspicionEvent,
    SuspicionResult,
)
from verigate.admission.store import InMemoryCounterStore, ScopedCounterStore, active_blocks
from verigate.admission.suspicion import SuspicionDetector
from verigate.config import Settings
from verigate.errors import ErrorCode
from verigate.privacy import clean_identifier, hash_identifier

logger = structlog.get_logger(__name__)

DEFAULT_MANUAL_BLOCK_SECONDS: float = 3600.0
SUSPICIOUS_LOG_SIZE: int = 1000


def _retry_after(seconds: float) -> int:
    return max(1, math.ceil(seconds))


class AdmissionLimiter:
    """
    Admission control over request metadata only.

    Construct one per deployment (or per test) and pass it to callers.
    """

    def __init__(
        self,
        limits: Optional[LimitTable] = None,
        store: Optional[ScopedCounterStore] = None,
        detector: Optional[SuspicionDetector] = None,
        clock: Callable[[], float] = time.time,
        hash_salt: Optional[str] = None,
    ):
        self.limits = validate_limits(DEFAULT_LIMITS if limits is None else limits)
        self.store = store or InMemoryCounterStore()
        self.detector = detector or SuspicionDetector()
        self._clock = clock
        self._salt = hash_salt
        self._suspicious_log: deque[dict] = deque(maxlen=SUSPICIOUS_LOG_SIZE)
        self._log_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "AdmissionLimiter":
        detector = SuspicionDetector(
            history_size=settings.suspicion_history_size,
            rotation_window_seconds=settings.rotation_window_seconds,
            geo_window_seconds=settings.geo_window_seconds,
            ip_rotation_threshold=settings.ip_rotation_threshold,
            user_rotation_threshold=settings.user_rotation_threshold,
            geo_region_threshold=settings.geo_region_threshold,
            bot_min_samples=settings.bot_min_samples,
            bot_max_variation=settings.bot_max_variation,
            high_velocity_count=settings.high_velocity_count,
            weights=settings.suspicion_weights,
        )
        kwargs.setdefault("detector", detector)
        kwargs.setdefault("limits", apply_overrides(settings.rate_limit_overrides))
        kwargs.setdefault("hash_salt", settings.hash_salt)
        return cls(**kwargs)

    def _hash(self, value: str) -> str:
        return hash_identifier(value, self._salt)

    @staticmethod
    def categorize_endpoint(path: str) -> EndpointClass:
        return categorize_endpoint(path)

    def scopes_for(self, request: AdmissionRequest) -> list[tuple[ScopeKey, Optional[LimitRule]]]:
        """Applicable scope keys in check order, each with its limit rule (None = unlimited)."""
        endpoint_class = categorize_endpoint(request.path)
        classes = [endpoint_class]
        if endpoint_class != EndpointClass.GLOBAL:
            classes.append(EndpointClass.GLOBAL)

        scopes = []
        for dimension, value in request.dimensions().items():
            value_hash = self._hash(value)
            for cls_ in classes:
                key = ScopeKey(dimension, value_hash, cls_)
                scopes.append((key, self.limits.get((dimension, cls_))))
        return scopes

    # ── Admission ─────────────────────────────────────────────────────────

    def check(self, request: AdmissionRequest) -> AdmissionResult:
        """Decide whether a request may proceed."""
        now = self._clock()
        endpoint_class = categorize_endpoint(request.path)
        dimensions = request.dimensions()
        hashes = {dim: self._hash(value) for dim, value in dimensions.items()}

        refusal = self._active_block_refusal(hashes, endpoint_class, now)
        results: list[ScopeCheck] = []

        if refusal is None:
            for key, rule in self.scopes_for(request):
                if rule is None:
                    results.append(ScopeCheck(scope=key.label, allowed=True))
                    continue

                admitted, count = self.store.hit(
                    key.storage_key(), now, rule.max_requests, rule.window_seconds
                )
                results.append(ScopeCheck(
                    scope=key.label,
                    allowed=admitted,
                    current_count=count,
                    limit=rule.max_requests,
                    remaining=max(0, rule.max_requests - count),
                ))
                if not admitted:
                    self.store.put_block(BlockEntry(
                        dimension=key.dimension,
                        value_hash=key.value_hash,
                        reason=ErrorCode.RATE_LIMIT_EXCEEDED.value,
                        expires_at=now + rule.block_seconds,
                        endpoint_class=key.endpoint_class,
                        created_at=now,
                    ))
                    refusal = AdmissionResult(
                        allowed=False,
                        blocked=True,
                        reason=ErrorCode.RATE_LIMIT_EXCEEDED.value,
                        scope=key.label,
                        retry_after=_retry_after(rule.block_seconds),
                    )
                    logger.warning(
                        "rate_limit_exceeded",
                        scope=key.label,
                        value_hash=key.value_hash,
                        count=count,
                        limit=rule.max_requests,
                    )
                    break

        suspicion = self._detect(request, hashes, results, now)

        if refusal is not None:
            return refusal.model_copy(update={
                "results": results,
                "suspicious": suspicion.suspicious,
                "patterns": suspicion.patterns,
                "risk_score": suspicion.risk_score,
            })

        return AdmissionResult(
            allowed=True,
            blocked=False,
            results=results,
            suspicious=suspicion.suspicious,
            patterns=suspicion.patterns,
            risk_score=suspicion.risk_score,
        )

    def _active_block_refusal(
        self,
        hashes: dict[Dimension, str],
        endpoint_class: EndpointClass,
        now: float,
    ) -> Optional[AdmissionResult]:
        for dimension, value_hash in hashes.items():
            blocks = [
                b for b in active_blocks(self.store.find_blocks(dimension, value_hash), now)
                if b.applies_to(endpoint_class)
            ]
            if not blocks:
                continue
            block = max(blocks, key=lambda b: b.expires_at)
            scope_class = block.endpoint_class or endpoint_class
            reason = ErrorCode.MANUALLY_BLOCKED if block.manual else ErrorCode.RATE_LIMIT_BLOCKED
            logger.info(
                "admission_refused_blocked",
                dimension=dimension.value,
                value_hash=value_hash,
                reason=reason.value,
            )
            return AdmissionResult(
                allowed=False,
                blocked=True,
                reason=reason.value,
                block_reason=block.reason,
                scope=f"{dimension}:{scope_class}",
                retry_after=_retry_after(block.expires_at - now),
            )
        return None

    def _detect(
        self,
        request: AdmissionRequest,
        hashes: dict[Dimension, str],
        results: list[ScopeCheck],
        now: float,
    ) -> SuspicionResult:
        try:
            event = SuspicionEvent(
                timestamp=request.timestamp if request.timestamp is not None else now,
                ip_hash=hashes.get(Dimension.IP),
                user_hash=hashes.get(Dimension.USER_ID),
                location=request.location,
            )
            suspicion = self.detector.observe(
                hashes.get(Dimension.DEVICE),
                event,
                scope_counts=[r.current_count for r in results],
            )
        except Exception as e:
            logger.error("suspicion_detection_failed", error=str(e))
            return SuspicionResult()

        if suspicion.suspicious:
            record = {
                "timestamp": now,
                "patterns": suspicion.patterns,
                "risk_score": suspicion.risk_score,
                "ip_hash": hashes.get(Dimension.IP),
                "user_hash": hashes.get(Dimension.USER_ID),
                "device_hash": hashes.get(Dimension.DEVICE),
                "endpoint_class": categorize_endpoint(request.path).value,
                "method": request.method,
            }
            with self._log_lock:
                self._suspicious_log.append(record)
            logger.warning(
                "suspicious_request",
                patterns=suspicion.patterns,
                risk_score=suspicion.risk_score,
                device_hash=record["device_hash"],
            )
        return suspicion

    # ── Blocks ────────────────────────────────────────────────────────────

    def block_entity(
        self,
        dimension: Dimension | str,
        value: str,
        reason: str,
        duration_seconds: float = DEFAULT_MANUAL_BLOCK_SECONDS,
    ) -> BlockEntry:
        """Manually block an entity across every endpoint class."""
        dimension = Dimension(dimension)
        cleaned = clean_identifier(value)
        if cleaned is None:
            raise ValueError("Cannot block an empty identifier")
        now = self._clock()
        entry = BlockEntry(
            dimension=dimension,
            value_hash=self._hash(cleaned),
            reason=reason,
            expires_at=now + max(0.0, float(duration_seconds)),
            manual=True,
            created_at=now,
        )
        self.store.put_block(entry)
        logger.info(
            "manual_block",
            dimension=dimension.value,
            value_hash=entry.value_hash,
            reason=reason,
            duration_seconds=duration_seconds,
        )
        return entry

    def unblock_entity(self, dimension: Dimension | str, value: str) -> bool:
        """Remove every block for an entity. Returns True if an active block was lifted."""
        dimension = Dimension(dimension)
        cleaned = clean_identifier(value)
        if cleaned is None:
            return False
        removed = self.store.delete_blocks(dimension, self._hash(cleaned))
        was_blocked = bool(active_blocks(removed, self._clock()))
        if was_blocked:
            logger.info("manual_unblock", dimension=dimension.value, value_hash=self._hash(cleaned))
        return was_blocked

    def is_blocked(self, dimension: Dimension | str, value: str) -> bool:
        return self.get_block_status(dimension, value) is not None

    def get_block_status(self, dimension: Dimension | str, value: str) -> Optional[BlockStatus]:
        dimension = Dimension(dimension)
        cleaned = clean_identifier(value)
        if cleaned is None:
            return None
        now = self._clock()
        blocks = active_blocks(self.store.find_blocks(dimension, self._hash(cleaned)), now)
        if not blocks:
            return None
        block = max(blocks, key=lambda b: b.expires_at)
        return BlockStatus(
            blocked=True,
            reason=block.reason,
            retry_after=_retry_after(block.expires_at - now),
            manual=block.manual,
            endpoint_class=block.endpoint_class.value if block.endpoint_class else None,
        )

    # ── Maintenance ───────────────────────────────────────────────────────

    def prune(self) -> PruneReport:
        """Drop expired counters, blocks and stale suspicion histories."""
        now = self._clock()
        windows, blocks = self.store.prune(now)
        histories = self.detector.prune(now)
        with self._log_lock:
            while self._suspicious_log and now - self._suspicious_log[0]["timestamp"] > 7 * 86400:
                self._suspicious_log.popleft()
        report = PruneReport(
            counters_removed=windows,
            blocks_removed=blocks,
            histories_removed=histories,
        )
        logger.debug("admission_pruned", **asdict(report))
        return report

    def recent_suspicious(self, limit: int = 10) -> list[dict]:
        with self._log_lock:
            return list(self._suspicious_log)[-limit:]

    def get_statistics(self) -> dict:
        now = self._clock()
        blocks = active_blocks(self.store.all_blocks(), now)
        return {
            "counters": self.store.window_count(),
            "active_blocks": len(blocks),
            "manual_blocks": sum(1 for b in blocks if b.manual),
            "tracked_devices": self.detector.tracked_devices,
            "suspicious_events": len(self._suspicious_log),
            "limits": [
                {
                    "scope": f"{dim}:{cls_}",
                    "max_requests": rule.max_requests,
                    "window_seconds": rule.window_seconds,
                    "block_seconds": rule.block_seconds,
                }
                for (dim, cls_), rule in self.limits.items()
            ],
        }
