"""Business-key extractors for duplicate resolution."""

from __future__ import annotations

import re
from typing import Any, Callable, Hashable, Mapping, Optional

_NON_DIGITS = re.compile(r"\D")


def normalize_phone_number(phone: str | None) -> str:
    """
    Canonical digits-only form used to compare phone numbers (91XXXXXXXXXX for Indian mobiles).
    Returns "" when there is nothing to normalize.
    """
    if not phone:
        return ""

    digits = _NON_DIGITS.sub("", str(phone))

    if len(digits) == 10:
        return "91" + digits
    if len(digits) == 11 and digits.startswith("0"):
        return "91" + digits[1:]
    if len(digits) == 12 and digits.startswith("91"):
        return digits
    if len(digits) == 13 and digits.startswith("091"):
        return digits[1:]

    if len(digits) > 10:
        last10 = digits[-10:]
        if last10[0] in "6789":
            return "91" + last10

    return digits


def phone_numbers_equal(a: str | None, b: str | None) -> bool:
    return normalize_phone_number(a) == normalize_phone_number(b)


def column_key(
    column: str,
    normalize: Callable[[Any], Optional[Hashable]] | None = None,
) -> Callable[[Mapping[str, Any]], Optional[Hashable]]:
    """Key extractor reading one payload field; None/blank values yield no key."""

    def extract(payload: Mapping[str, Any]) -> Optional[Hashable]:
        v = payload.get(column)
        if v is None:
            return None
        if isinstance(v, str):
            v = v.strip()
            if not v:
                return None
        return normalize(v) if normalize is not None else v

    return extract


def phone_key(column: str) -> Callable[[Mapping[str, Any]], Optional[Hashable]]:
    return column_key(column, normalize_phone_number)
