"""
Admission Limiter Schemas.

Engine-internal records are dataclasses; request/result objects crossing
the component boundary are pydantic models.
"""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from verigate.privacy import clean_identifier


class Dimension(StrEnum):
    IP = "ip"
    USER_ID = "userId"
    DEVICE = "device"


class EndpointClass(StrEnum):
    GLOBAL = "global"
    FUNDING = "funding"
    VERIFICATION = "verification"
    CONSENT = "consent"
    DATA_EXPORT = "dataExport"


class SuspicionPattern(StrEnum):
    IP_ROTATION = "IP_ROTATION_DETECTED"
    USER_ROTATION = "USER_ROTATION_DETECTED"
    BOT_LIKE = "BOT_LIKE_PATTERN"
    GEOGRAPHIC_ANOMALY = "GEOGRAPHIC_ANOMALY"
    MULTI_SCOPE_HIGH_VELOCITY = "MULTI_SCOPE_HIGH_VELOCITY"


@dataclass(frozen=True)
class LimitRule:
    """Sliding-window limit for one dimension + endpoint class."""
    max_requests: int
    window_seconds: float
    block_seconds: float


@dataclass(frozen=True)
class ScopeKey:
    """Identity of one counter window. The value is always hashed."""
    dimension: Dimension
    value_hash: str
    endpoint_class: EndpointClass

    @property
    def label(self) -> str:
        """Public scope name, e.g. 'ip:funding'."""
        return f"{self.dimension}:{self.endpoint_class}"

    def storage_key(self) -> str:
        return f"{self.label}:{self.value_hash}"


@dataclass
class BlockEntry:
    """
    An active or expired block.

    endpoint_class None (manual blocks) or GLOBAL applies to every endpoint
    class. A block is active iff now < expires_at.
    """
    dimension: Dimension
    value_hash: str
    reason: str
    expires_at: float
    endpoint_class: Optional[EndpointClass] = None
    manual: bool = False
    created_at: float = 0.0

    def is_active(self, now: float) -> bool:
        return now < self.expires_at

    def applies_to(self, endpoint_class: EndpointClass) -> bool:
        if self.endpoint_class is None or self.endpoint_class == EndpointClass.GLOBAL:
            return True
        return self.endpoint_class == endpoint_class


@dataclass(frozen=True)
class SuspicionEvent:
    """One request as remembered in a device's Suspicion History (hashed ids only)."""
    timestamp: float
    ip_hash: Optional[str] = None
    user_hash: Optional[str] = None
    location: Optional[str] = None


@dataclass
class SuspicionResult:
    suspicious: bool = False
    patterns: list[str] = field(default_factory=list)
    risk_score: float = 0.0


@dataclass(frozen=True)
class PruneReport:
    counters_removed: int
    blocks_removed: int
    histories_removed: int


class AdmissionRequest(BaseModel):
    """Request metadata consumed by the limiter. Blank identifiers are absent."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    ip: Optional[str] = None
    user_id: Optional[str] = Field(default=None, alias="userId")
    device_fingerprint: Optional[str] = Field(default=None, alias="deviceFingerprint")
    path: str = "/"
    method: str = "GET"
    location: Optional[str] = None
    timestamp: Optional[float] = None

    @field_validator("ip", "user_id", "device_fingerprint", "location", mode="before")
    @classmethod
    def _blank_is_absent(cls, value: Any) -> Optional[str]:
        return clean_identifier(value)

    @field_validator("path", mode="before")
    @classmethod
    def _default_path(cls, value: Any) -> str:
        return value if isinstance(value, str) and value else "/"

    def dimensions(self) -> dict[Dimension, str]:
        """Present identifying dimensions, raw values."""
        present = {
            Dimension.IP: self.ip,
            Dimension.USER_ID: self.user_id,
            Dimension.DEVICE: self.device_fingerprint,
        }
        return {dim: value for dim, value in present.items() if value is not None}


class ScopeCheck(BaseModel):
    """Outcome of checking a single scope."""
    scope: str
    allowed: bool
    current_count: int = 0
    limit: Optional[int] = None
    remaining: Optional[int] = None


class AdmissionResult(BaseModel):
    allowed: bool
    blocked: bool
    reason: Optional[str] = None
    block_reason: Optional[str] = None
    scope: Optional[str] = None
    retry_after: Optional[int] = None
    suspicious: bool = False
    patterns: list[str] = Field(default_factory=list)
    risk_score: float = 0.0
    results: list[ScopeCheck] = Field(default_factory=list)


class BlockStatus(BaseModel):
    blocked: bool
    reason: str
    retry_after: int
    manual: bool
    endpoint_class: Optional[str] = None
