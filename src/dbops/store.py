"""Interfaces the reconciler and duplicate resolver talk to."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Union

from dbops.reports import Record
from dbops.schema_spec import ColumnSpec, IndexSpec


@dataclass(frozen=True)
class AddColumn:
    table_name: str
    column: ColumnSpec


@dataclass(frozen=True)
class CreateIndex:
    table_name: str
    index: IndexSpec


SchemaChange = Union[AddColumn, CreateIndex]


class SchemaInspector(ABC):
    """Reports committed schema state. Both methods raise TableNotFound for a missing table."""

    @abstractmethod
    def list_columns(self, table_name: str) -> set[str]:
        pass

    @abstractmethod
    def list_indexes(self, table_name: str) -> set[str]:
        pass


class RecordStore(ABC):
    """Applies schema changes and reads/deletes rows. Failures raise StoreError."""

    @abstractmethod
    def execute_schema_change(self, intent: SchemaChange) -> None:
        pass

    @abstractmethod
    def select_all(self, table_name: str) -> list[Record]:
        pass

    @abstractmethod
    def delete_by_id(self, table_name: str, record_id: Any) -> None:
        pass
