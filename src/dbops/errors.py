from __future__ import annotations

import re
from enum import Enum


class FailureReason(str, Enum):
    TABLE_NOT_FOUND = "TableNotFound"
    PERMISSION_DENIED = "PermissionDenied"
    TYPE_CONFLICT = "TypeConflict"
    DEPENDENCY_MISSING = "DependencyMissing"
    UNKNOWN = "Unknown"


class SchemaSpecError(ValueError):
    """A table spec that cannot be reconciled at all (caller bug)."""


class StoreError(Exception):
    """
    A failed call against the schema inspector or record store.
    reason is already classified; detail/code keep the driver's own words.
    """

    def __init__(
        self,
        detail: str,
        reason: FailureReason = FailureReason.UNKNOWN,
        code: str | None = None,
    ) -> None:
        super().__init__(detail)
        self.detail = detail
        self.reason = reason
        self.code = code


class TableNotFound(StoreError):
    def __init__(self, table: str) -> None:
        super().__init__(f"Table not found: {table}", FailureReason.TABLE_NOT_FOUND)
        self.table = table


# SQLSTATE -> reason
_SQLSTATE_REASONS = {
    "42501": FailureReason.PERMISSION_DENIED,
    "42804": FailureReason.TYPE_CONFLICT,
    "42S02": FailureReason.TABLE_NOT_FOUND,
}

# SQL Server native error number -> reason
_NATIVE_REASONS = {
    229: FailureReason.PERMISSION_DENIED,   # permission denied on object
    230: FailureReason.PERMISSION_DENIED,   # permission denied on column
    262: FailureReason.PERMISSION_DENIED,   # CREATE/ALTER permission denied
    300: FailureReason.PERMISSION_DENIED,
    1088: FailureReason.PERMISSION_DENIED,  # object missing or no permission
    1919: FailureReason.TYPE_CONFLICT,      # column type invalid as index key
    1778: FailureReason.TYPE_CONFLICT,      # FK column type mismatch
    208: FailureReason.TABLE_NOT_FOUND,     # invalid object name
    4902: FailureReason.TABLE_NOT_FOUND,
}

_NATIVE_RE = re.compile(r"\((\d{3,5})\)")


def classify_store_error(exc: BaseException) -> StoreError:
    """
    Turns a driver exception (pyodbc.Error: args == (sqlstate, message)) into a StoreError.
    Native error numbers win over the SQLSTATE, which ODBC reports as 42000 for most of them.
    """
    if isinstance(exc, StoreError):
        return exc

    args = getattr(exc, "args", ()) or ()
    sqlstate: str | None = None
    message = str(exc)
    if len(args) >= 2 and isinstance(args[0], str):
        sqlstate = args[0]
        message = str(args[1])

    reason = FailureReason.UNKNOWN
    for num in _NATIVE_RE.findall(message):
        hit = _NATIVE_REASONS.get(int(num))
        if hit is not None:
            reason = hit
            break
    else:
        if sqlstate is not None:
            reason = _SQLSTATE_REASONS.get(sqlstate.upper(), FailureReason.UNKNOWN)

    return StoreError(message, reason, code=sqlstate)
