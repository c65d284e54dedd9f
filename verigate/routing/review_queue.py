"""
Manual Review Queue — FIFO holding area for human adjudication.

Entries are appended with status queued and are never reordered, evicted
or dropped. Only a reviewer moves an entry forward:

    queued → in_review → resolved
"""

import threading
import uuid
from datetime import datetime
from typing import Optional

import structlog

from verigate.errors import InvalidReviewTransitionError, ReviewNotFoundError
from verigate.privacy import mask_pii
from verigate.routing.schemas import ManualReviewEntry, ReviewStatus, RoutingDecision

logger = structlog.get_logger(__name__)

# Logged when exceeded; nothing is dropped.
BACKLOG_WARNING_SIZE: int = 1000


class ManualReviewQueue:
    def __init__(self, backlog_warning_size: int = BACKLOG_WARNING_SIZE):
        self.backlog_warning_size = backlog_warning_size
        self._entries: list[ManualReviewEntry] = []
        self._index: dict[str, ManualReviewEntry] = {}
        self._lock = threading.Lock()

    def enqueue(self, routing: RoutingDecision) -> ManualReviewEntry:
        entry = ManualReviewEntry(
            review_id=f"review_{uuid.uuid4().hex[:16]}",
            user_id=routing.user_id,
            verification_id=routing.verification_id,
            tier=routing.final_tier,
            risk_score=routing.risk_score,
            confidence=routing.confidence,
            conflicts=list(routing.conflicts),
            warnings=list(routing.warnings),
        )
        with self._lock:
            self._entries.append(entry)
            self._index[entry.review_id] = entry
            size = len(self._entries)
            snapshot = entry.model_copy()

        logger.info(
            "manual_review_queued",
            review_id=entry.review_id,
            user=mask_pii(routing.user_id),
            conflicts=entry.conflicts,
            queue_size=size,
        )
        if size > self.backlog_warning_size:
            logger.warning("manual_review_backlog", queue_size=size)
        return snapshot

    def get(self, review_id: str) -> ManualReviewEntry:
        with self._lock:
            entry = self._index.get(review_id)
            if entry is None:
                raise ReviewNotFoundError(review_id)
            return entry.model_copy()

    def start_review(self, review_id: str, reviewer: str) -> ManualReviewEntry:
        return self._transition(
            review_id,
            ReviewStatus.QUEUED,
            ReviewStatus.IN_REVIEW,
            reviewer=reviewer,
            started_at=datetime.utcnow(),
        )

    def resolve(self, review_id: str, resolution: str, notes: Optional[str] = None) -> ManualReviewEntry:
        return self._transition(
            review_id,
            ReviewStatus.IN_REVIEW,
            ReviewStatus.RESOLVED,
            resolution=resolution,
            notes=notes,
            resolved_at=datetime.utcnow(),
        )

    def _transition(
        self,
        review_id: str,
        expected: ReviewStatus,
        target: ReviewStatus,
        **updates,
    ) -> ManualReviewEntry:
        with self._lock:
            entry = self._index.get(review_id)
            if entry is None:
                raise ReviewNotFoundError(review_id)
            if entry.status != expected:
                raise InvalidReviewTransitionError(review_id, entry.status.value, target.value)
            entry.status = target
            for field_name, value in updates.items():
                setattr(entry, field_name, value)
            snapshot = entry.model_copy()

        logger.info("manual_review_transition", review_id=review_id, status=target.value)
        return snapshot

    def entries(self, status: Optional[ReviewStatus] = None) -> list[ManualReviewEntry]:
        """Entries in arrival order, optionally filtered by status."""
        with self._lock:
            return [
                e.model_copy() for e in self._entries
                if status is None or e.status == status
            ]

    def next_queued(self) -> Optional[ManualReviewEntry]:
        with self._lock:
            for entry in self._entries:
                if entry.status == ReviewStatus.QUEUED:
                    return entry.model_copy()
        return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
