"""
Structured Logging Setup.

structlog processor chain with an identifier redaction step: values under
identifying keys are replaced by their salted hash before rendering.
"""

import logging
import sys
from typing import Any

import structlog

from verigate.config import settings
from verigate.privacy import hash_identifier

IDENTIFYING_KEYS = frozenset({
    "ip",
    "user_id",
    "userId",
    "device_fingerprint",
    "deviceFingerprint",
    "email",
    "phone",
})


class IdentifierRedactor:
    """
    structlog processor hashing raw identifiers in the event dict.

    Values already hashed by the caller should be logged under a *_hash key.
    """

    def __call__(self, logger: Any, method_name: str, event_dict: dict) -> dict:
        for key in IDENTIFYING_KEYS.intersection(event_dict):
            value = event_dict[key]
            if value:
                event_dict[key] = hash_identifier(str(value))
        return event_dict


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Configure structlog + stdlib logging once at process start."""
    level = (level or settings.log_level).upper()
    fmt = fmt or settings.log_format

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level, logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            IdentifierRedactor(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if fmt == "json"
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
