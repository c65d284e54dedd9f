"""
Rate Limit Table and Endpoint Classification.

Funding endpoints are stricter than verification endpoints; data export is
strictest (daily cap per user). Paths that match no class fall back to the
permissive global limits.
"""

from typing import Mapping, Sequence

from verigate.admission.schemas import Dimension, EndpointClass, LimitRule
from verigate.errors import ConfigurationError

MINUTE = 60.0
HOUR = 60 * MINUTE
DAY = 24 * HOUR

LimitTable = Mapping[tuple[Dimension, EndpointClass], LimitRule]

DEFAULT_LIMITS: dict[tuple[Dimension, EndpointClass], LimitRule] = {
    (Dimension.IP, EndpointClass.GLOBAL): LimitRule(100, MINUTE, 5 * MINUTE),
    (Dimension.USER_ID, EndpointClass.GLOBAL): LimitRule(50, MINUTE, 10 * MINUTE),
    (Dimension.DEVICE, EndpointClass.GLOBAL): LimitRule(30, MINUTE, 15 * MINUTE),
    # Funding / wallet
    (Dimension.IP, EndpointClass.FUNDING): LimitRule(5, MINUTE, 30 * MINUTE),
    (Dimension.USER_ID, EndpointClass.FUNDING): LimitRule(3, MINUTE, HOUR),
    (Dimension.DEVICE, EndpointClass.FUNDING): LimitRule(2, MINUTE, 2 * HOUR),
    # Verification
    (Dimension.IP, EndpointClass.VERIFICATION): LimitRule(10, MINUTE, 15 * MINUTE),
    (Dimension.USER_ID, EndpointClass.VERIFICATION): LimitRule(5, MINUTE, 30 * MINUTE),
    # Consent
    (Dimension.IP, EndpointClass.CONSENT): LimitRule(20, MINUTE, 20 * MINUTE),
    (Dimension.USER_ID, EndpointClass.CONSENT): LimitRule(10, MINUTE, 40 * MINUTE),
    # Data export / portability
    (Dimension.IP, EndpointClass.DATA_EXPORT): LimitRule(3, MINUTE, HOUR),
    (Dimension.USER_ID, EndpointClass.DATA_EXPORT): LimitRule(5, DAY, DAY),
}

# Checked in order; first match wins.
_ENDPOINT_MARKERS: tuple[tuple[EndpointClass, tuple[str, ...]], ...] = (
    (EndpointClass.FUNDING, ("/funding", "/wallet")),
    (EndpointClass.VERIFICATION, ("/verify", "/verification")),
    (EndpointClass.CONSENT, ("/consent",)),
    (EndpointClass.DATA_EXPORT, ("/export", "/portability")),
)


def categorize_endpoint(path: str) -> EndpointClass:
    """Map a request path onto its endpoint class."""
    lowered = (path or "").lower()
    for endpoint_class, markers in _ENDPOINT_MARKERS:
        if any(marker in lowered for marker in markers):
            return endpoint_class
    return EndpointClass.GLOBAL


def validate_limits(limits: LimitTable) -> dict[tuple[Dimension, EndpointClass], LimitRule]:
    """Reject malformed limit tables at construction time."""
    validated: dict[tuple[Dimension, EndpointClass], LimitRule] = {}
    for key, rule in limits.items():
        if (
            not isinstance(key, tuple)
            or len(key) != 2
            or not isinstance(key[0], Dimension)
            or not isinstance(key[1], EndpointClass)
        ):
            raise ConfigurationError(f"Invalid limit key {key!r}", field="limits")
        if not isinstance(rule, LimitRule):
            raise ConfigurationError(f"Limit for {key!r} is not a LimitRule", field="limits")
        label = f"{key[0]}:{key[1]}"
        if not isinstance(rule.max_requests, int) or rule.max_requests < 1:
            raise ConfigurationError(f"{label} max_requests must be >= 1", field="limits")
        if rule.window_seconds <= 0:
            raise ConfigurationError(f"{label} window_seconds must be positive", field="limits")
        if rule.block_seconds < 0:
            raise ConfigurationError(f"{label} block_seconds must not be negative", field="limits")
        validated[key] = rule
    return validated


def apply_overrides(
    overrides: Mapping[str, Sequence[float]],
    base: LimitTable = DEFAULT_LIMITS,
) -> dict[tuple[Dimension, EndpointClass], LimitRule]:
    """
    Layer 'dimension:class' → (max_requests, window_seconds, block_seconds)
    overrides on top of a limit table, e.g. {"ip:funding": [10, 60, 1800]}.
    """
    table = dict(base)
    for label, values in overrides.items():
        dimension, _, endpoint_class = str(label).partition(":")
        try:
            key = (Dimension(dimension), EndpointClass(endpoint_class))
            max_requests, window_seconds, block_seconds = values
            rule = LimitRule(int(max_requests), float(window_seconds), float(block_seconds))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid rate limit override {label!r}: {e}", field="rate_limit_overrides"
            )
        table[key] = rule
    return validate_limits(table)
