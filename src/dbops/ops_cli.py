from __future__ import annotations

import argparse
import json
import logging

from dbops.config import get_db_config
from dbops.db import get_conn
from dbops.duplicates import resolve_duplicates
from dbops.errors import FailureReason, StoreError
from dbops.keys import column_key, phone_key
from dbops.mssql_store import (
    MssqlRecordStore,
    MssqlSchemaInspector,
    render_add_column,
    render_create_index,
    render_table_sql,
)
from dbops.reconciler import reconcile
from dbops.reports import ItemStatus, ReconciliationReport, ResolutionReport
from dbops.schema_spec import TableSchemaSpec
from dbops.specs.whatsapp import DEDUPE_RULES, TABLE_SPECS, get_table_spec
from dbops.table_tools import count_table, require_confirm


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="ops")
    p.add_argument("--log-level", default="WARNING", help="Logging level (DEBUG, INFO, WARNING, ...)")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("ping", help="Smoke test command")
    sub.add_parser("show_config", help="Print loaded DB config (sanity check)")
    sub.add_parser("db_ping", help="Connect to SQL Server and run SELECT 1")

    # inspection
    p_cols = sub.add_parser("list_columns", help="List columns and indexes of a table")
    p_cols.add_argument("--table", required=True, help="Table name (e.g. dbo.messages)")

    p_ct = sub.add_parser("count_table", help="Count rows in any table")
    p_ct.add_argument("--table", required=True, help="Table name (e.g. dbo.messages)")

    # schema reconciliation
    p_rec = sub.add_parser("reconcile", help="Add missing columns/indexes from the built-in table specs")
    p_rec.add_argument("--table", required=True, help="Spec name (e.g. messages) or 'all'")
    p_rec.add_argument("--json", action="store_true", help="Print the report(s) as JSON")

    p_sql = sub.add_parser("show_sql", help="Print the DDL for a table spec (to run by hand)")
    p_sql.add_argument("--table", required=True, help="Spec name (e.g. messages) or 'all'")

    # duplicate resolution
    p_dd = sub.add_parser("dedupe", help="Remove duplicate rows by business key, newest wins")
    p_dd.add_argument("--table", required=True, help="Table name (e.g. dbo.whatsapp_numbers)")
    p_dd.add_argument("--key", default=None, help="Business key column (default from built-in rules)")
    p_dd.add_argument("--phone", action="store_true", help="Normalize the key as a phone number")
    p_dd.add_argument("--id-column", default="id", help="Primary id column (default id)")
    p_dd.add_argument("--created-column", default="created_at", help="Creation timestamp column (default created_at)")
    p_dd.add_argument("--dry-run", action="store_true", help="Report what would be removed, delete nothing")
    p_dd.add_argument("--json", action="store_true", help="Print the report as JSON")
    p_dd.add_argument("--require-confirm", dest="confirm", default=None, help='Must equal: "DEDUPE <table>" (not needed with --dry-run)')

    return p


# seams for tests
def _make_inspector():
    return MssqlSchemaInspector(get_conn)


def _make_store(id_column: str = "id", created_at_column: str = "created_at"):
    return MssqlRecordStore(get_conn, id_column=id_column, created_at_column=created_at_column)


def _specs_for(name: str) -> list[TableSchemaSpec]:
    if name.strip().lower() == "all":
        return list(TABLE_SPECS.values())
    return [get_table_spec(name)]


def _manual_sql(spec: TableSchemaSpec, report: ReconciliationReport) -> list[str]:
    out: list[str] = []
    for item in report.failed:
        if item.reason == FailureReason.TABLE_NOT_FOUND:
            continue
        if item.kind == "column":
            out.append(render_add_column(spec.table_name, spec.column(item.name)))
        else:
            ix = next(i for i in spec.indexes if i.name == item.name)
            out.append(render_create_index(spec.table_name, ix))
    return out


def _print_reconcile(spec: TableSchemaSpec, report: ReconciliationReport) -> None:
    mark = "✅" if report.ok else "❌"
    print(
        f"reconcile {mark} {report.table_name} "
        f"added={len(report.added)} present={len(report.already_present)} failed={len(report.failed)}"
    )
    for item in report.items:
        if item.status == ItemStatus.FAILED_TO_ADD:
            print(f"  ❌ {item.kind} {item.name}: {item.reason.value} {item.detail or ''}".rstrip())
        elif item.status == ItemStatus.ADDED:
            print(f"  ✅ {item.kind} {item.name}: added")
        else:
            print(f"  ✔ {item.kind} {item.name}: already present")

    sql = _manual_sql(spec, report)
    if sql:
        print("  📝 Run this SQL manually once the problem above is fixed:")
        for s in sql:
            print(f"    {s}")


def _print_dedupe(report: ResolutionReport) -> None:
    mark = "✅" if report.ok else "❌"
    label = "dedupe (dry run)" if report.dry_run else "dedupe"
    print(
        f"{label} {mark} {report.table_name} scanned={report.scanned} "
        f"distinct_keys={report.distinct_keys} duplicate_keys={report.duplicate_keys} "
        f"removed={len(report.removed)} failed={len(report.failures)} skipped={len(report.skipped)}"
    )
    for key, survivor in report.survivors.items():
        print(f"  key={key} keep id={survivor}")
    if report.dry_run and report.planned:
        print(f"  would remove ids={list(report.planned)}")
    for f in report.failures:
        print(f"  ❌ id={f.id}: {f.reason.value} {f.detail or ''}".rstrip())


def _run(args: argparse.Namespace, parser: argparse.ArgumentParser) -> int:
    if args.cmd == "ping":
        print("pong ✅")
        return 0

    if args.cmd == "show_config":
        cfg = get_db_config()
        print(cfg.masked())
        return 0

    if args.cmd == "db_ping":
        conn = get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT 1;")
            row = cur.fetchone()
        finally:
            conn.close()
        print(f"db ✅ ok={row[0]}")
        return 0

    if args.cmd == "list_columns":
        inspector = _make_inspector()
        try:
            cols = inspector.list_columns(args.table)
            idxs = inspector.list_indexes(args.table)
        except StoreError as e:
            print(f"table ❌ {args.table}: {e.reason.value} {e.detail}")
            return 1
        print(f"table ✅ {args.table} columns={sorted(cols)}")
        print(f"table ✅ {args.table} indexes={sorted(idxs)}")
        return 0

    if args.cmd == "count_table":
        n = count_table(args.table)
        print(f"table ✅ {args.table} count={n}")
        return 0

    if args.cmd == "show_sql":
        for spec in _specs_for(args.table):
            print(f"-- {spec.table_name}")
            for s in render_table_sql(spec):
                print(s)
        return 0

    if args.cmd == "reconcile":
        specs = _specs_for(args.table)
        inspector = _make_inspector()
        store = _make_store()
        reports = [(spec, reconcile(spec, inspector, store)) for spec in specs]

        if args.json:
            print(json.dumps([r.to_dict() for _, r in reports], indent=2, ensure_ascii=False, default=str))
        else:
            for spec, report in reports:
                _print_reconcile(spec, report)

        return 0 if all(r.ok for _, r in reports) else 1

    if args.cmd == "dedupe":
        rule = DEDUPE_RULES.get(args.table.strip().lower().removeprefix("dbo."))
        key_col = args.key or (rule.key_column if rule else None)
        if not key_col:
            raise RuntimeError(f"No default business key for {args.table}; pass --key")
        use_phone = args.phone or (rule is not None and args.key is None and rule.phone)

        if not args.dry_run:
            require_confirm("DEDUPE", args.table, args.confirm)

        extractor = phone_key(key_col) if use_phone else column_key(key_col)
        store = _make_store(args.id_column, args.created_column)
        report = resolve_duplicates(args.table, extractor, store, dry_run=args.dry_run)

        if args.json:
            print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False, default=str))
        else:
            _print_dedupe(report)
        return 0 if report.ok else 1

    parser.print_help()
    return 2


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        return _run(args, parser)
    except (RuntimeError, ValueError) as e:
        raise SystemExit(str(e)) from None
    except StoreError as e:
        raise SystemExit(f"store ❌ {e.reason.value}: {e.detail}") from None
