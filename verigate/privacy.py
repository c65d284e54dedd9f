"""
Identifier Privacy Helpers.

Raw ip / user id / device fingerprint values never leave the call that
received them: stores, audit records and log lines only ever see the
salted one-way hash.
"""

import hashlib
from typing import Any, Optional

from verigate.config import settings

HASH_LENGTH = 12


def hash_identifier(value: str, salt: Optional[str] = None) -> str:
    """Salted SHA-256 of an identifier, truncated to HASH_LENGTH hex chars."""
    salt = settings.hash_salt if salt is None else salt
    return hashlib.sha256(f"{value}{salt}".encode("utf-8")).hexdigest()[:HASH_LENGTH]


def mask_pii(value: Any) -> str:
    """Keep the first and last two characters, mask the rest."""
    if not value:
        return "undefined"
    text = str(value)
    if len(text) <= 4:
        return "****"
    return f"{text[:2]}****{text[-2:]}"


def clean_identifier(value: Any) -> Optional[str]:
    """
    Normalize an optional identifier field.

    Empty, whitespace-only and non-string values are treated as absent.
    """
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None
