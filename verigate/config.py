"""
VeriGate Configuration.

Pydantic Settings v2 — loads from .env, environment variables.

Every numeric threshold here is a tunable default, not an invariant.
Components take explicit constructor arguments and offer from_settings().
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # ── Application ──────────────────────────────────────────────────────
    app_name: str = "VeriGate"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    # ── Privacy ───────────────────────────────────────────────────────────
    hash_salt: str = Field(default="rate-limiter-salt", alias="VERIGATE_HASH_SALT")

    # ── Admission Limiter ─────────────────────────────────────────────────
    suspicion_history_size: int = Field(default=50, alias="SUSPICION_HISTORY_SIZE")
    rotation_window_seconds: float = Field(default=3600.0, alias="ROTATION_WINDOW_SECONDS")
    geo_window_seconds: float = Field(default=86400.0, alias="GEO_WINDOW_SECONDS")
    ip_rotation_threshold: int = Field(default=3, alias="IP_ROTATION_THRESHOLD")
    user_rotation_threshold: int = Field(default=2, alias="USER_ROTATION_THRESHOLD")
    geo_region_threshold: int = Field(default=2, alias="GEO_REGION_THRESHOLD")
    bot_min_samples: int = Field(default=5, alias="BOT_MIN_SAMPLES")
    bot_max_variation: float = Field(default=0.1, alias="BOT_MAX_VARIATION")
    high_velocity_count: int = Field(default=10, alias="HIGH_VELOCITY_COUNT")
    # "dimension:class" -> [max_requests, window_seconds, block_seconds]
    rate_limit_overrides: dict[str, list[float]] = Field(default_factory=dict, alias="RATE_LIMIT_OVERRIDES")
    # pattern -> risk weight, e.g. {"BOT_LIKE_PATTERN": 60}
    suspicion_weights: dict[str, float] = Field(default_factory=dict, alias="SUSPICION_WEIGHTS")

    # ── Cross-Source Validator ────────────────────────────────────────────
    consistency_threshold: float = Field(default=0.8, alias="CONSISTENCY_THRESHOLD")
    critical_pair_threshold: float = Field(default=0.4, alias="CRITICAL_PAIR_THRESHOLD")
    verification_expiry_seconds: float = Field(default=86400.0, alias="VERIFICATION_EXPIRY_SECONDS")
    prescreen_max_attempts: int = Field(default=5, alias="PRESCREEN_MAX_ATTEMPTS")
    prescreen_window_seconds: float = Field(default=3600.0, alias="PRESCREEN_WINDOW_SECONDS")

    # ── Tier Router ───────────────────────────────────────────────────────
    reject_risk_floor: float = Field(default=85.0, alias="TIER_REJECT_RISK_FLOOR")
    fast_min_confidence: float = Field(default=90.0, alias="TIER_FAST_MIN_CONFIDENCE")
    fast_max_risk: float = Field(default=10.0, alias="TIER_FAST_MAX_RISK")
    standard_min_confidence: float = Field(default=70.0, alias="TIER_STANDARD_MIN_CONFIDENCE")
    standard_max_risk: float = Field(default=40.0, alias="TIER_STANDARD_MAX_RISK")
    low_consistency_threshold: float = Field(default=0.5, alias="CONFLICT_LOW_CONSISTENCY")
    pair_mismatch_threshold: float = Field(default=0.6, alias="CONFLICT_PAIR_MISMATCH")
    risk_divergence_threshold: float = Field(default=30.0, alias="CONFLICT_RISK_DIVERGENCE")
    confidence_divergence_threshold: float = Field(default=25.0, alias="CONFLICT_CONFIDENCE_DIVERGENCE")

    # ── Operational ────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="console", alias="LOG_FORMAT")
    prune_interval_seconds: int = Field(default=300, alias="PRUNE_INTERVAL_SECONDS")


settings = Settings()
