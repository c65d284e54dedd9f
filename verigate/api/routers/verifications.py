"""
Verification Status Endpoint.

GET /api/v1/verifications/{verification_id} — cached Verification Record summary
"""

from fastapi import APIRouter, Depends, HTTPException

from verigate.api.deps import get_validator
from verigate.validation.engine import CrossSourceValidator
from verigate.validation.schemas import VerificationStatus

router = APIRouter(prefix="/api/v1/verifications", tags=["verifications"])


@router.get("/{verification_id}", response_model=VerificationStatus)
async def get_verification(
    verification_id: str,
    validator: CrossSourceValidator = Depends(get_validator),
):
    status = validator.get_verification_status(verification_id)
    if not status.found:
        raise HTTPException(status_code=404, detail="Verification not found")
    return status
