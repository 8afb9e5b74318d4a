"""portal_import.dedup

Collapse CSV rows that share a dedup key.

Rules (first occurrence wins):
  - later identical occurrence  → dropped, DuplicateIdentical warning
  - later differing occurrence  → DuplicateConflicting warning + hard error;
                                  the caller must abort the whole import
  - row with no usable key      → dropped, "missing row" notice
  - row with an invalid value   → hard error (RowValueError from to_record)

Runs before matching, so the matcher never sees two records for one key.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping

from portal_import.models import (
    DuplicateConflicting,
    DuplicateIdentical,
    NormalizedRecord,
    RowWarning,
)

log = logging.getLogger(__name__)


class RowValueError(ValueError):
    """Raised by a record builder when a row carries an unusable value."""


@dataclass
class DedupResult:
    records: list[NormalizedRecord] = field(default_factory=list)
    warnings: list[RowWarning] = field(default_factory=list)
    notices: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def _default_conflict(a: NormalizedRecord, b: NormalizedRecord) -> bool:
    return a != b


def dedupe_records(
    rows: Iterable[Mapping[str, str]],
    to_record: Callable[[Mapping[str, str], int], NormalizedRecord | None],
    describe: Callable[[NormalizedRecord], str],
    missing_row_notice: Callable[[Mapping[str, str]], str | None] | None = None,
    rows_conflict: Callable[[NormalizedRecord, NormalizedRecord], bool] | None = None,
) -> DedupResult:
    """Build one NormalizedRecord per dedup key.

    Args:
        rows: Raw header-keyed rows in file order.
        to_record: Builds a record from a raw row and its 1-based data-row
            number; returns None when the row has no usable key.
        describe: Human label for a record's key, used in messages
            (e.g. 'PID "100"').
        missing_row_notice: Message for a keyless row, or None to drop it
            silently.
        rows_conflict: Returns True when two same-key records disagree.
            Defaults to record equality (row_number excluded).
    """
    conflict = rows_conflict or _default_conflict
    result = DedupResult()
    by_key: dict[str, NormalizedRecord] = {}
    conflicted: set[str] = set()
    deduped: set[str] = set()

    for idx, raw_row in enumerate(rows, start=1):
        try:
            record = to_record(raw_row, idx)
        except RowValueError as exc:
            result.errors.append(str(exc))
            continue

        if record is None:
            notice = missing_row_notice(raw_row) if missing_row_notice else None
            if notice:
                result.notices.append(notice)
            continue

        first = by_key.get(record.key)
        if first is None:
            by_key[record.key] = record
            result.records.append(record)
            continue

        if conflict(first, record):
            if record.key in conflicted:
                continue
            conflicted.add(record.key)
            message = f"{describe(record)} has conflicting duplicate rows; import blocked."
            log.warning("dedup conflict on key %r (rows %s and %s)", record.key, first.row_number, idx)
            result.warnings.append(DuplicateConflicting(key=record.key, message=message))
            result.errors.append(message)
        elif record.key not in deduped:
            deduped.add(record.key)
            result.warnings.append(DuplicateIdentical(
                key=record.key,
                message=f"{describe(record)} has duplicate identical rows; deduped.",
            ))

    return result
