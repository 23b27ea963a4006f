# src/dbops/reconciler.py
from __future__ import annotations

import logging

from dbops.errors import FailureReason, StoreError, classify_store_error
from dbops.reports import ItemResult, ItemStatus, ReconciliationReport
from dbops.schema_spec import TableSchemaSpec, check_index_columns, validate_table_spec
from dbops.store import AddColumn, CreateIndex, RecordStore, SchemaInspector

logger = logging.getLogger(__name__)


def _fail_everything(spec: TableSchemaSpec, err: StoreError) -> ReconciliationReport:
    cols = tuple(
        ItemResult("column", c.name, ItemStatus.FAILED_TO_ADD, err.reason, err.detail) for c in spec.columns
    )
    idxs = tuple(
        ItemResult("index", ix.name, ItemStatus.FAILED_TO_ADD, err.reason, err.detail) for ix in spec.indexes
    )
    return ReconciliationReport(spec.table_name, cols, idxs)


def reconcile(
    spec: TableSchemaSpec,
    inspector: SchemaInspector,
    store: RecordStore,
) -> ReconciliationReport:
    """
    Adds whatever columns/indexes of spec are missing from the live table.

    - One inspection pass up front; no re-inspection between changes.
    - Existing columns are never altered (type/nullability stay as they are).
    - Indexes are matched by name and created after all column additions.
      An index over a column that failed to be added is skipped (DependencyMissing).
    - Store failures are recorded per item; only a malformed spec raises (SchemaSpecError).
    """
    validate_table_spec(spec)
    table = spec.table_name

    try:
        live_columns = set(inspector.list_columns(table))
        live_indexes = set(inspector.list_indexes(table))
    except Exception as e:
        err = classify_store_error(e)
        logger.warning("reconcile %s: inspection failed (%s): %s", table, err.reason.value, err.detail)
        return _fail_everything(spec, err)

    check_index_columns(spec, live_columns)

    present_cols = {c.casefold() for c in live_columns}
    present_idx = {i.casefold() for i in live_indexes}

    col_results: list[ItemResult] = []
    failed_cols: set[str] = set()

    for col in spec.columns:
        if col.name.casefold() in present_cols:
            logger.debug("reconcile %s: column %s already present", table, col.name)
            col_results.append(ItemResult("column", col.name, ItemStatus.ALREADY_PRESENT))
            continue

        try:
            store.execute_schema_change(AddColumn(table, col))
        except Exception as e:
            err = classify_store_error(e)
            failed_cols.add(col.name.casefold())
            logger.warning("reconcile %s: add column %s failed (%s): %s", table, col.name, err.reason.value, err.detail)
            col_results.append(ItemResult("column", col.name, ItemStatus.FAILED_TO_ADD, err.reason, err.detail))
            continue

        logger.info("reconcile %s: added column %s", table, col.name)
        col_results.append(ItemResult("column", col.name, ItemStatus.ADDED))

    idx_results: list[ItemResult] = []

    for ix in spec.indexes:
        if ix.name.casefold() in present_idx:
            logger.debug("reconcile %s: index %s already present", table, ix.name)
            idx_results.append(ItemResult("index", ix.name, ItemStatus.ALREADY_PRESENT))
            continue

        blocked = [c for c in ix.columns if c.casefold() in failed_cols]
        if blocked:
            detail = f"column(s) not added in this run: {', '.join(blocked)}"
            logger.warning("reconcile %s: skipped index %s, %s", table, ix.name, detail)
            idx_results.append(
                ItemResult("index", ix.name, ItemStatus.FAILED_TO_ADD, FailureReason.DEPENDENCY_MISSING, detail)
            )
            continue

        try:
            store.execute_schema_change(CreateIndex(table, ix))
        except Exception as e:
            err = classify_store_error(e)
            logger.warning("reconcile %s: create index %s failed (%s): %s", table, ix.name, err.reason.value, err.detail)
            idx_results.append(ItemResult("index", ix.name, ItemStatus.FAILED_TO_ADD, err.reason, err.detail))
            continue

        logger.info("reconcile %s: created index %s", table, ix.name)
        idx_results.append(ItemResult("index", ix.name, ItemStatus.ADDED))

    return ReconciliationReport(table, tuple(col_results), tuple(idx_results))
