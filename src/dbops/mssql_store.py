# src/dbops/mssql_store.py
from __future__ import annotations

import logging
import re
from typing import Any, Callable

import pyodbc

from dbops.db import get_conn
from dbops.errors import StoreError, TableNotFound, classify_store_error
from dbops.reports import Record
from dbops.schema_spec import ColumnSpec, ColumnType, IndexSpec, TableSchemaSpec
from dbops.store import AddColumn, CreateIndex, RecordStore, SchemaChange, SchemaInspector

logger = logging.getLogger(__name__)

_SAFE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


# ---------- SQL rendering ----------
def _ident(name: str) -> str:
    if not _SAFE_NAME.match(name or ""):
        raise ValueError(f"Unsafe SQL identifier: {name!r}")
    return f"[{name}]"


def split_schema_table(full: str) -> tuple[str, str]:
    s = (full or "").strip()
    if "." in s:
        a, b = s.split(".", 1)
        return a.strip(), b.strip()
    return "dbo", s


def full_table_name(table: str) -> str:
    schema, name = split_schema_table(table)
    _ident(schema)
    _ident(name)
    return f"{schema}.{name}"


def _sql_type(col: ColumnSpec) -> str:
    t = col.type
    if t == ColumnType.TEXT:
        return f"NVARCHAR({col.length})" if col.length else "NVARCHAR(MAX)"
    if t == ColumnType.INTEGER:
        return "INT"
    if t == ColumnType.BOOLEAN:
        return "BIT"
    if t == ColumnType.TIMESTAMP:
        return "DATETIMEOFFSET"
    if t == ColumnType.FOREIGN_KEY:
        return "INT"
    raise RuntimeError(f"Unknown column type for SQL type: {t}")


def _sql_literal(v: Any) -> str:
    if isinstance(v, bool):
        return "1" if v else "0"
    if isinstance(v, (int, float)):
        return repr(v)
    if isinstance(v, str):
        return "N'" + v.replace("'", "''") + "'"
    raise RuntimeError(f"Unsupported default value: {v!r}")


def render_add_column(table: str, col: ColumnSpec) -> str:
    full = full_table_name(table)
    parts = [f"ALTER TABLE {full} ADD {_ident(col.name)} {_sql_type(col)}"]
    parts.append("NULL" if col.nullable else "NOT NULL")

    if col.default_value is not None:
        parts.append(f"DEFAULT ({_sql_literal(col.default_value)})")
        if col.nullable:
            parts.append("WITH VALUES")  # backfill existing rows like NOT NULL does

    if col.type == ColumnType.FOREIGN_KEY:
        ref_table, ref_col = col.reference_target()
        parts.append(f"REFERENCES {full_table_name(ref_table)} ({_ident(ref_col)})")

    return " ".join(parts) + ";"


def render_create_index(table: str, ix: IndexSpec) -> str:
    full = full_table_name(table)
    unique_sql = "UNIQUE " if ix.unique else ""
    cols_sql = ", ".join(_ident(c) for c in ix.columns)
    return f"CREATE {unique_sql}INDEX {_ident(ix.name)} ON {full} ({cols_sql});"


def render_ddl(intent: SchemaChange) -> str:
    if isinstance(intent, AddColumn):
        return render_add_column(intent.table_name, intent.column)
    if isinstance(intent, CreateIndex):
        return render_create_index(intent.table_name, intent.index)
    raise TypeError(f"Not a schema change intent: {intent!r}")


def render_table_sql(spec: TableSchemaSpec) -> list[str]:
    """All statements for a spec, columns first; what an operator runs by hand."""
    out = [render_add_column(spec.table_name, c) for c in spec.columns]
    out.extend(render_create_index(spec.table_name, ix) for ix in spec.indexes)
    return out


# ---------- Catalog ----------
def _table_exists(cur, schema: str, name: str) -> bool:
    cur.execute(
        """
        SELECT 1
        FROM sys.tables t
        JOIN sys.schemas s ON s.schema_id = t.schema_id
        WHERE s.name = ? AND t.name = ?;
        """,
        (schema, name),
    )
    return cur.fetchone() is not None


class MssqlSchemaInspector(SchemaInspector):
    def __init__(self, connect: Callable[[], Any] = get_conn) -> None:
        self._connect = connect

    def list_columns(self, table_name: str) -> set[str]:
        schema, name = split_schema_table(table_name)
        conn = self._connect()
        try:
            cur = conn.cursor()
            if not _table_exists(cur, schema, name):
                raise TableNotFound(table_name)
            cur.execute(
                """
                SELECT c.name
                FROM sys.columns c
                JOIN sys.tables t ON t.object_id = c.object_id
                JOIN sys.schemas s ON s.schema_id = t.schema_id
                WHERE s.name = ? AND t.name = ?
                ORDER BY c.column_id;
                """,
                (schema, name),
            )
            return {r[0] for r in cur.fetchall()}
        except pyodbc.Error as e:
            raise classify_store_error(e) from e
        finally:
            conn.close()

    def list_indexes(self, table_name: str) -> set[str]:
        schema, name = split_schema_table(table_name)
        conn = self._connect()
        try:
            cur = conn.cursor()
            if not _table_exists(cur, schema, name):
                raise TableNotFound(table_name)
            cur.execute(
                """
                SELECT name
                FROM sys.indexes
                WHERE object_id = OBJECT_ID(?) AND name IS NOT NULL;
                """,
                (f"{schema}.{name}",),
            )
            return {r[0] for r in cur.fetchall()}
        except pyodbc.Error as e:
            raise classify_store_error(e) from e
        finally:
            conn.close()


# ---------- Records + DDL ----------
class MssqlRecordStore(RecordStore):
    def __init__(
        self,
        connect: Callable[[], Any] = get_conn,
        *,
        id_column: str = "id",
        created_at_column: str = "created_at",
    ) -> None:
        _ident(id_column)
        _ident(created_at_column)
        self._connect = connect
        self.id_column = id_column
        self.created_at_column = created_at_column

    def execute_schema_change(self, intent: SchemaChange) -> None:
        sql = render_ddl(intent)
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(sql)
            conn.commit()
            logger.debug("ddl applied: %s", sql)
        except pyodbc.Error as e:
            conn.rollback()
            raise classify_store_error(e) from e
        finally:
            conn.close()

    def select_all(self, table_name: str) -> list[Record]:
        full = full_table_name(table_name)
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(f"SELECT * FROM {full};")
            cols = [d[0] for d in cur.description]

            cols_l = {c.lower(): c for c in cols}
            id_col = cols_l.get(self.id_column.lower())
            created_col = cols_l.get(self.created_at_column.lower())
            if id_col is None:
                raise StoreError(f"{full} has no {self.id_column} column")
            if created_col is None:
                raise StoreError(f"{full} has no {self.created_at_column} column")

            out: list[Record] = []
            for row in cur.fetchall():
                payload = dict(zip(cols, row))
                out.append(Record(id=payload[id_col], created_at=payload[created_col], payload=payload))
            return out
        except pyodbc.Error as e:
            raise classify_store_error(e) from e
        finally:
            conn.close()

    def delete_by_id(self, table_name: str, record_id: Any) -> None:
        full = full_table_name(table_name)
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(f"DELETE FROM {full} WHERE {_ident(self.id_column)} = ?;", (record_id,))
            deleted = int(cur.rowcount)
            conn.commit()
            if deleted == 0:
                # already gone since the snapshot; the outcome is the same
                logger.debug("delete %s id=%s matched no row", full, record_id)
        except pyodbc.Error as e:
            conn.rollback()
            raise classify_store_error(e) from e
        finally:
            conn.close()
