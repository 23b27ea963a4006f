from __future__ import annotations

from dbops.db import get_conn
from dbops.mssql_store import full_table_name


def require_confirm(action: str, table: str, confirm: str | None) -> None:
    expected = f"{action} {table}"
    if confirm is None:
        raise RuntimeError(
            "Safety check: this action requires --require-confirm.\n"
            f'Expected: --require-confirm "{expected}"'
        )
    if confirm.strip() != expected:
        raise RuntimeError(
            "Safety check: confirmation did not match.\n"
            f"Expected: {expected}\n"
            f"Got:      {confirm.strip()}"
        )


def count_table(table: str, connect=get_conn) -> int:
    """
    Counts rows in a table (dbo. assumed when no schema is given).
    """
    full = full_table_name(table)
    conn = connect()
    try:
        cur = conn.cursor()
        cur.execute(f"SELECT COUNT(*) FROM {full};")
        return int(cur.fetchone()[0])
    finally:
        conn.close()
