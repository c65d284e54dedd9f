"""
Fuzzy Matching Primitives.

- edit_distance: unit-cost insert/delete/substitute (Levenshtein), two-row DP
- fuzzy_match: 1 - distance / max(len) over trimmed, case-folded strings
- compare_phone_numbers: digit normalization, country-code tolerance
- account_match: identity account digits contained in a linked account id

All scores are in [0, 1]. None inputs score 0.0.
"""

import re
from typing import Iterable, Optional

_NON_DIGITS = re.compile(r"\D")

PHONE_SUFFIX_SCORE: float = 0.9
PHONE_MIN_SUFFIX_DIGITS: int = 7
NATIONAL_NUMBER_LENGTH: int = 10


def edit_distance(a: str, b: str) -> int:
    """Minimum single-character edits turning a into b."""
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(
                previous[j] + 1,         # deletion
                current[j - 1] + 1,      # insertion
                previous[j - 1] + cost,  # substitution
            ))
        previous = current
    return previous[-1]


def normalize_text(value: str) -> str:
    return value.strip().casefold()


def fuzzy_match(a: Optional[str], b: Optional[str]) -> float:
    """
    Normalized edit-distance similarity.

    fuzzy_match(s, s) == 1.0, fuzzy_match("", "") == 1.0,
    fuzzy_match("x", "") == 0.0, fuzzy_match(None, anything) == 0.0.
    """
    if a is None or b is None:
        return 0.0
    s1, s2 = normalize_text(a), normalize_text(b)
    if s1 == s2:
        return 1.0
    longest = max(len(s1), len(s2))
    return 1.0 - edit_distance(s1, s2) / longest


def normalize_phone(phone: str) -> str:
    """Digits only, with a leading '1' country code dropped from 11-digit numbers."""
    digits = _NON_DIGITS.sub("", phone)
    if len(digits) == NATIONAL_NUMBER_LENGTH + 1 and digits.startswith("1"):
        digits = digits[1:]
    return digits


def compare_phone_numbers(a: Optional[str], b: Optional[str]) -> float:
    """
    Phone similarity.

    Exact digit match after normalization → 1.0; one number a suffix of the
    other (country-code-only difference) → 0.9; otherwise fuzzy on digits.
    """
    if not a or not b:
        return 0.0
    d1, d2 = normalize_phone(a), normalize_phone(b)
    if not d1 or not d2:
        return 0.0
    if d1 == d2:
        return 1.0
    shorter, longer = sorted((d1, d2), key=len)
    if len(shorter) >= PHONE_MIN_SUFFIX_DIGITS and longer.endswith(shorter):
        return PHONE_SUFFIX_SCORE
    return fuzzy_match(d1, d2)


def account_match(account_number: Optional[str], accounts: Iterable[str]) -> float:
    """1.0 when any linked account id contains the identity account digits."""
    if not account_number:
        return 0.0
    wanted = _NON_DIGITS.sub("", account_number)
    if not wanted:
        return 0.0
    for account in accounts:
        if wanted in _NON_DIGITS.sub("", account or ""):
            return 1.0
    return 0.0
