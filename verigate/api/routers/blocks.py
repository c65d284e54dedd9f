"""
Admin Block Endpoints.

POST /api/v1/admin/blocks          — manually block an entity
POST /api/v1/admin/blocks/status   — current block status of an entity
POST /api/v1/admin/blocks/unblock  — lift every block on an entity

Dimension is one of ip, userId, device. The raw identifier travels only in
the request body, never in the URL, so it stays out of access logs and the
admission audit trail. Responses carry only the hashed value.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from verigate.admission.limiter import DEFAULT_MANUAL_BLOCK_SECONDS, AdmissionLimiter
from verigate.admission.schemas import Dimension
from verigate.api.deps import get_limiter

router = APIRouter(prefix="/api/v1/admin/blocks", tags=["admin"])


# ── Schemas ───────────────────────────────────────────────────────────


class EntityRef(BaseModel):
    dimension: Dimension
    value: str = Field(min_length=1)


class BlockRequest(EntityRef):
    reason: str = "manual"
    duration_seconds: float = Field(default=DEFAULT_MANUAL_BLOCK_SECONDS, gt=0)


class BlockResponse(BaseModel):
    dimension: Dimension
    value_hash: str
    reason: str
    expires_at: float
    manual: bool = True


class BlockStatusResponse(BaseModel):
    dimension: Dimension
    blocked: bool
    reason: Optional[str] = None
    retry_after: Optional[int] = None
    manual: Optional[bool] = None
    endpoint_class: Optional[str] = None


# ── Endpoints ─────────────────────────────────────────────────────────


@router.post("", response_model=BlockResponse, status_code=201)
async def create_block(
    body: BlockRequest,
    limiter: AdmissionLimiter = Depends(get_limiter),
):
    """Block an entity across every endpoint class."""
    try:
        entry = limiter.block_entity(body.dimension, body.value, body.reason, body.duration_seconds)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return BlockResponse(
        dimension=entry.dimension,
        value_hash=entry.value_hash,
        reason=entry.reason,
        expires_at=entry.expires_at,
        manual=entry.manual,
    )


@router.post("/status", response_model=BlockStatusResponse)
async def get_block(
    body: EntityRef,
    limiter: AdmissionLimiter = Depends(get_limiter),
):
    status = limiter.get_block_status(body.dimension, body.value)
    if status is None:
        return BlockStatusResponse(dimension=body.dimension, blocked=False)
    return BlockStatusResponse(dimension=body.dimension, **status.model_dump())


@router.post("/unblock")
async def delete_block(
    body: EntityRef,
    limiter: AdmissionLimiter = Depends(get_limiter),
):
    """Lift every block on an entity. 404 when nothing was active."""
    if not limiter.unblock_entity(body.dimension, body.value):
        raise HTTPException(status_code=404, detail="No active block")
    return {"status": "unblocked", "dimension": body.dimension.value}
