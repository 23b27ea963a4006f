from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Hashable, Mapping

from dbops.errors import FailureReason


class ItemStatus(str, Enum):
    ALREADY_PRESENT = "AlreadyPresent"
    ADDED = "Added"
    FAILED_TO_ADD = "FailedToAdd"


@dataclass(frozen=True)
class ItemResult:
    kind: str  # "column" | "index"
    name: str
    status: ItemStatus
    reason: FailureReason | None = None
    detail: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "name": self.name,
            "status": self.status.value,
            "reason": None if self.reason is None else self.reason.value,
            "detail": self.detail,
        }


@dataclass(frozen=True)
class ReconciliationReport:
    table_name: str
    columns: tuple[ItemResult, ...]
    indexes: tuple[ItemResult, ...]

    @property
    def items(self) -> tuple[ItemResult, ...]:
        return self.columns + self.indexes

    @property
    def added(self) -> list[ItemResult]:
        return [i for i in self.items if i.status == ItemStatus.ADDED]

    @property
    def already_present(self) -> list[ItemResult]:
        return [i for i in self.items if i.status == ItemStatus.ALREADY_PRESENT]

    @property
    def failed(self) -> list[ItemResult]:
        return [i for i in self.items if i.status == ItemStatus.FAILED_TO_ADD]

    @property
    def ok(self) -> bool:
        return not self.failed

    def status_of(self, name: str, kind: str | None = None) -> ItemStatus | None:
        for i in self.items:
            if i.name == name and (kind is None or i.kind == kind):
                return i.status
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table_name,
            "columns": [i.to_dict() for i in self.columns],
            "indexes": [i.to_dict() for i in self.indexes],
        }


@dataclass(frozen=True)
class Record:
    id: Any
    created_at: Any
    payload: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RemovalFailure:
    id: Any
    reason: FailureReason
    detail: str | None = None


@dataclass(frozen=True)
class ResolutionReport:
    table_name: str
    scanned: int
    distinct_keys: int
    duplicate_keys: int
    survivors: Mapping[Hashable, Any]
    removed: tuple[Any, ...]
    failures: tuple[RemovalFailure, ...]
    skipped: tuple[Any, ...] = ()
    planned: tuple[Any, ...] = ()  # ids marked for removal, attempted or not
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table_name,
            "scanned": self.scanned,
            "distinct_keys": self.distinct_keys,
            "duplicate_keys": self.duplicate_keys,
            "survivors": {str(k): v for k, v in self.survivors.items()},
            "removed": list(self.removed),
            "failures": [
                {"id": f.id, "reason": f.reason.value, "detail": f.detail} for f in self.failures
            ],
            "skipped": list(self.skipped),
            "planned": list(self.planned),
            "dry_run": self.dry_run,
        }
