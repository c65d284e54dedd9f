"""
Cross-Source Validator Schemas.

Source results are supplied by callers (identity verifier, payment-link
verifier, bank-link verifier); this package never fetches them.
"""

from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PreScreenIssue(StrEnum):
    INVALID_EMAIL = "INVALID_EMAIL"
    INVALID_PHONE = "INVALID_PHONE"
    INVALID_USER_ID = "INVALID_USER_ID"
    SUSPICIOUS_PATTERN = "SUSPICIOUS_PATTERN"
    VELOCITY_LIMIT_EXCEEDED = "VELOCITY_LIMIT_EXCEEDED"


class SourceName(StrEnum):
    IDENTITY = "identity"
    PAYMENT_LINK = "payment_link"
    BANK_LINK = "bank_link"


class UserData(BaseModel):
    """Raw user-supplied data for pre-screening."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_id: Optional[str] = Field(default=None, alias="userId")
    email: Optional[str] = None
    phone: Optional[str] = None


class PreScreenResult(BaseModel):
    passed: bool
    score: float
    issues: list[str] = Field(default_factory=list)
    validation_time_ms: float = 0.0


class SourceResult(BaseModel):
    """One verification source's view of the user."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    success: bool = False
    user_id: Optional[str] = Field(default=None, alias="userId")
    email: Optional[str] = None
    phone: Optional[str] = None
    name: Optional[str] = None
    account_number: Optional[str] = Field(default=None, alias="accountNumber")
    accounts: list[str] = Field(default_factory=list)
    flags: list[str] = Field(default_factory=list)


class IdentityResult(SourceResult):
    """Identity verification outcome, the primary source."""

    verification_id: Optional[str] = Field(default=None, alias="verificationId")
    confidence: float = 0.0          # 0-100
    risk_score: float = 0.0          # 0-100
    documents_verified: bool = False
    email_verified: bool = False
    phone_verified: bool = False
    age_verified: bool = False
    address_verified: bool = False

    @property
    def core_fields_verified(self) -> bool:
        return self.documents_verified and self.email_verified and self.phone_verified


class SourcePresence(BaseModel):
    identity: bool = False
    payment_link: bool = False
    bank_link: bool = False

    def count(self) -> int:
        return sum((self.identity, self.payment_link, self.bank_link))


class CrossValidationScores(BaseModel):
    """Pairwise similarity (0-1, None when nothing comparable) and aggregate."""
    identity_payment: Optional[float] = None
    identity_bank: Optional[float] = None
    payment_bank: Optional[float] = None
    overall_consistency: float = 0.0
    comparisons: int = 0
    field_matches: dict[str, dict[str, float]] = Field(default_factory=dict)


class ValidationOutcome(BaseModel):
    passed: bool = False
    confidence: float = 0.0          # 0-100
    risk_score: float = 0.0          # 0-100
    issues: list[str] = Field(default_factory=list)


class CrossValidationResult(BaseModel):
    success: bool
    verification_id: str
    user_id: Optional[str] = None
    validation: ValidationOutcome = Field(default_factory=ValidationOutcome)
    sources: SourcePresence = Field(default_factory=SourcePresence)
    supplied: SourcePresence = Field(default_factory=SourcePresence)
    cross_validation: CrossValidationScores = Field(default_factory=CrossValidationScores)
    source_flags: dict[str, list[str]] = Field(default_factory=dict)
    unrequested: list[str] = Field(default_factory=list)   # not consulted, not counted missing
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class VerificationRecord(BaseModel):
    """Cached outcome of a successful cross-validation."""
    verification_id: str
    user_id: Optional[str] = None
    result: CrossValidationResult
    created_at: float


class VerificationStatus(BaseModel):
    found: bool
    verification_id: str
    user_id: Optional[str] = None    # masked
    passed: Optional[bool] = None
    confidence: Optional[float] = None
    risk_score: Optional[float] = None
    created_at: Optional[float] = None
    error: Optional[str] = None
