# src/dbops/duplicates.py
from __future__ import annotations

import logging
from typing import Any, Callable, Hashable, Iterable, Mapping, Optional

from dbops.errors import classify_store_error
from dbops.reports import Record, RemovalFailure, ResolutionReport
from dbops.store import RecordStore
from dbops.typecast import id_sort_key, timestamp_sort_key

logger = logging.getLogger(__name__)

KeyExtractor = Callable[[Mapping[str, Any]], Optional[Hashable]]


def _newest_first(r: Record) -> tuple:
    return (timestamp_sort_key(r.created_at), id_sort_key(r.id))


def pick_survivor(group: Iterable[Record]) -> tuple[Record, list[Record]]:
    """
    Orders a group newest-first (created_at desc, then id desc).
    Returns (survivor, rest); input order never matters.
    """
    ordered = sorted(group, key=_newest_first, reverse=True)
    if not ordered:
        raise ValueError("pick_survivor needs at least one record")
    return ordered[0], ordered[1:]


def plan_groups(
    records: Iterable[Record],
    key_extractor: KeyExtractor,
) -> tuple[dict[Hashable, list[Record]], list[Record]]:
    """
    Partitions records by business key.
    Returns (groups, unkeyed); a key of None or "" means "no key".
    """
    groups: dict[Hashable, list[Record]] = {}
    unkeyed: list[Record] = []
    for r in records:
        key = key_extractor(r.payload)
        if key is None or key == "":
            unkeyed.append(r)
            continue
        groups.setdefault(key, []).append(r)
    return groups, unkeyed


def resolve_duplicates(
    table_name: str,
    key_extractor: KeyExtractor,
    store: RecordStore,
    *,
    dry_run: bool = False,
) -> ResolutionReport:
    """
    Collapses every group of records sharing a business key down to its newest record.

    Works on one select_all snapshot; rows written after it are not seen.
    Deletes run one at a time and a failed delete never stops the rest.
    dry_run computes the plan (survivors + planned) without deleting anything.
    """
    try:
        records = list(store.select_all(table_name))
    except Exception as e:
        # nothing to resolve without a snapshot; this one is the caller's to handle
        err = classify_store_error(e)
        if err is e:
            raise
        raise err from e

    groups, unkeyed = plan_groups(records, key_extractor)

    for r in unkeyed:
        logger.debug("dedupe %s: id=%s has no key, skipped", table_name, r.id)

    survivors: dict[Hashable, Any] = {}
    planned: list[Any] = []
    removed: list[Any] = []
    failures: list[RemovalFailure] = []
    duplicate_keys = 0

    for key, members in groups.items():
        if len(members) < 2:
            continue
        duplicate_keys += 1

        # survivor is fixed before any delete in the group is issued
        keep, rest = pick_survivor(members)
        survivors[key] = keep.id
        logger.info(
            "dedupe %s: key=%s keeping id=%s (created_at=%s), %d duplicate(s)",
            table_name, key, keep.id, keep.created_at, len(rest),
        )

        for dup in rest:
            planned.append(dup.id)
            if dry_run:
                continue
            try:
                store.delete_by_id(table_name, dup.id)
            except Exception as e:
                err = classify_store_error(e)
                logger.warning(
                    "dedupe %s: removing id=%s failed (%s): %s",
                    table_name, dup.id, err.reason.value, err.detail,
                )
                failures.append(RemovalFailure(dup.id, err.reason, err.detail))
                continue
            logger.info("dedupe %s: removed id=%s (created_at=%s)", table_name, dup.id, dup.created_at)
            removed.append(dup.id)

    return ResolutionReport(
        table_name=table_name,
        scanned=len(records),
        distinct_keys=len(groups),
        duplicate_keys=duplicate_keys,
        survivors=survivors,
        removed=tuple(removed),
        failures=tuple(failures),
        skipped=tuple(r.id for r in unkeyed),
        planned=tuple(planned),
        dry_run=dry_run,
    )
