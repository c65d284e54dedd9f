"""
Manual Review Endpoints.

GET  /api/v1/reviews                     — entries in FIFO order, optional status filter
GET  /api/v1/reviews/{review_id}         — one entry
POST /api/v1/reviews/{review_id}/start   — queued → in_review
POST /api/v1/reviews/{review_id}/resolve — in_review → resolved

Unknown ids answer 404, out-of-order transitions 409 (via the error handler).
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from verigate.api.deps import get_router
from verigate.routing.router import TierRouter
from verigate.routing.schemas import ManualReviewEntry, ReviewStatus

router = APIRouter(prefix="/api/v1/reviews", tags=["human-review"])


# ── Schemas ───────────────────────────────────────────────────────────


class ReviewListResponse(BaseModel):
    reviews: list[ManualReviewEntry]
    total: int


class StartRequest(BaseModel):
    reviewer: str = Field(min_length=1)


class ResolveRequest(BaseModel):
    resolution: str = Field(min_length=1)  # e.g. "approved" or "rejected"
    notes: Optional[str] = None


# ── Endpoints ─────────────────────────────────────────────────────────


@router.get("", response_model=ReviewListResponse)
async def list_reviews(
    status: Optional[ReviewStatus] = Query(default=None),
    tier_router: TierRouter = Depends(get_router),
):
    reviews = tier_router.review_queue.entries(status)
    return ReviewListResponse(reviews=reviews, total=len(reviews))


@router.get("/{review_id}", response_model=ManualReviewEntry)
async def get_review(
    review_id: str,
    tier_router: TierRouter = Depends(get_router),
):
    return tier_router.review_queue.get(review_id)


@router.post("/{review_id}/start", response_model=ManualReviewEntry)
async def start_review(
    review_id: str,
    body: StartRequest,
    tier_router: TierRouter = Depends(get_router),
):
    return tier_router.review_queue.start_review(review_id, body.reviewer)


@router.post("/{review_id}/resolve", response_model=ManualReviewEntry)
async def resolve_review(
    review_id: str,
    body: ResolveRequest,
    tier_router: TierRouter = Depends(get_router),
):
    return tier_router.review_queue.resolve(review_id, body.resolution, body.notes)
