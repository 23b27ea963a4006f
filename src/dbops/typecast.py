# src/dbops/typecast.py
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any


def to_int(v: Any) -> int | None:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    s = str(v).strip()
    if s == "":
        return None
    try:
        return int(s)
    except ValueError:
        return None


def to_datetime(v: Any) -> datetime | None:
    """
    Best-effort timestamp parser for created_at style values.
    Returns an aware datetime (naive values are taken as UTC), or None.
    """
    if v is None:
        return None

    if isinstance(v, datetime):
        dt = v
    elif isinstance(v, date):
        dt = datetime(v.year, v.month, v.day)
    else:
        s = str(v).strip()
        if s == "":
            return None
        dt = None
        for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M", "%Y-%m-%d"):
            try:
                dt = datetime.strptime(s, fmt)
                break
            except ValueError:
                pass
        if dt is None:
            # ISO with T separator, offsets, or a Z suffix (Postgres/JS style)
            s2 = s[:-1] + "+00:00" if s.endswith("Z") else s
            try:
                dt = datetime.fromisoformat(s2)
            except ValueError:
                return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def timestamp_sort_key(v: Any) -> datetime:
    """Missing or unparseable timestamps sort as the oldest."""
    dt = to_datetime(v)
    return _OLDEST if dt is None else dt


def id_sort_key(v: Any) -> tuple[int, int, str]:
    """
    Numeric ids (ints or integer strings) compare as numbers.
    Anything else compares as text and ranks above every number.
    """
    n = to_int(v)
    if n is not None:
        return (0, n, "")
    return (1, 0, "" if v is None else str(v))
