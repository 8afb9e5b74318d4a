"""portal_import.reconcile

Import pipeline shared by every CSV kind.

    Validating → Deduping → Matching → WarningCheck
        → preview:  return (no writes)
        → commit:   Blocked | nothing matched | Committing → Logging → Done

Each CSV kind is described by an ImportProfile (columns, record builder,
matching options, cross-reference checks, derived fields). Failures come
back as ImportOutcome states, never as exceptions. Storage errors are the
exception: they propagate so the caller can roll back its transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping, Sequence

from portal_import.audit import build_batch, log_admin_action, write_audit_entries
from portal_import.columns import headers_of, validate_columns
from portal_import.config import DEFAULT_POLICY, ImportPolicy
from portal_import.cross_reference import CrossReferenceChecks, collect_warnings
from portal_import.dedup import dedupe_records
from portal_import.fields import EVENT_TYPES
from portal_import.matching import MatchOptions, RosterIndex, match_records
from portal_import.models import (
    EMPTY_CSV,
    MODE_PREVIEW,
    NO_PARTICIPANTS_MATCHED,
    STATE_BLOCKED,
    STATE_COMMITTED,
    STATE_CONFLICT,
    STATE_NOTHING_MATCHED,
    STATE_PREVIEW,
    STATE_VALIDATION_FAILED,
    VALID_MODES,
    ImportOutcome,
    NoDoublesPartner,
    NormalizedRecord,
    RowWarning,
    blocking_warnings,
)
from portal_import.roster_store import RosterStore
from portal_import.upsert import Deriver, apply_upserts

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RowContext:
    """Per-call values a profile's row hooks need."""

    header_map: Mapping[str, str]
    policy: ImportPolicy
    event_type: str | None = None

    def cell(self, raw_row: Mapping[str, str], column: str) -> str | None:
        header = self.header_map.get(column)
        if header is None:
            return None
        return raw_row.get(header)


@dataclass(frozen=True)
class ImportProfile:
    """Wiring of one CSV kind into the shared pipeline."""

    name: str
    action: str
    required_columns: tuple[str, ...]
    to_record: Callable[[Mapping[str, str], int, RowContext], NormalizedRecord | None]
    describe: Callable[[NormalizedRecord], str]
    header_aliases: Mapping[str, Sequence[str]] = field(default_factory=dict)
    optional_columns: tuple[str, ...] = ()
    missing_row_notice: Callable[[Mapping[str, str], RowContext], str | None] | None = None
    rows_conflict: Callable[[NormalizedRecord, NormalizedRecord], bool] | None = None
    pivot: Callable[[list[NormalizedRecord], RowContext], list[NormalizedRecord]] | None = None
    precheck: Callable[[Sequence[Mapping[str, str]], RowContext], list[str]] | None = None
    match_options: MatchOptions = field(default_factory=MatchOptions)
    checks: CrossReferenceChecks = field(default_factory=CrossReferenceChecks)
    derive: Deriver | None = None
    requires_event_type: bool = False


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def _fail(outcome: ImportOutcome, state: str, errors: Iterable[str]) -> ImportOutcome:
    outcome.state = state
    outcome.errors.extend(errors)
    log.info("import stopped in state %s: %s", state, "; ".join(outcome.errors))
    return outcome


def _blocked_message(blocking: list[RowWarning]) -> str:
    if all(isinstance(w, NoDoublesPartner) for w in blocking):
        return (
            f"Cannot import doubles scores: {len(blocking)} bowler(s) have no doubles "
            "partner assigned. Assign partners before importing."
        )
    return f"Import blocked by {len(blocking)} blocking warning(s)."


def run_import(
    profile: ImportProfile,
    rows: Iterable[Mapping[str, str]],
    *,
    mode: str,
    store: RosterStore,
    actor: str,
    event_type: str | None = None,
    policy: ImportPolicy = DEFAULT_POLICY,
) -> ImportOutcome:
    """Reconcile parsed CSV rows against the roster held by store.

    In commit mode every write (field updates, the audit batch and the
    admin-action summary) goes through store; the caller commits or rolls
    back the surrounding transaction based on outcome.ok.
    """
    if mode not in VALID_MODES:
        raise ValueError(f"mode must be one of {sorted(VALID_MODES)}, got {mode!r}")
    rows = list(rows)
    outcome = ImportOutcome(state=STATE_PREVIEW, mode=mode)
    log.info("%s %s: %d row(s)", profile.name, mode, len(rows))

    # -- Validating ---------------------------------------------------------
    if profile.requires_event_type and event_type not in EVENT_TYPES:
        return _fail(outcome, STATE_VALIDATION_FAILED, [
            f"event_type must be one of {', '.join(EVENT_TYPES)}, got {event_type!r}"
        ])
    if not rows:
        return _fail(outcome, STATE_VALIDATION_FAILED, [EMPTY_CSV])
    columns = validate_columns(
        headers_of(rows),
        profile.required_columns,
        profile.header_aliases,
        profile.optional_columns,
    )
    if not columns.valid:
        return _fail(outcome, STATE_VALIDATION_FAILED, [columns.error])
    ctx = RowContext(header_map=columns.header_map, policy=policy, event_type=event_type)
    if profile.precheck is not None:
        precheck_errors = profile.precheck(rows, ctx)
        if precheck_errors:
            return _fail(outcome, STATE_VALIDATION_FAILED, precheck_errors)

    # -- Deduping -----------------------------------------------------------
    missing_notice = profile.missing_row_notice
    dedup = dedupe_records(
        rows,
        lambda raw_row, idx: profile.to_record(raw_row, idx, ctx),
        profile.describe,
        missing_row_notice=(lambda raw_row: missing_notice(raw_row, ctx)) if missing_notice else None,
        rows_conflict=profile.rows_conflict,
    )
    outcome.warnings.extend(dedup.warnings)
    outcome.notices.extend(dedup.notices)
    if dedup.errors:
        return _fail(outcome, STATE_CONFLICT, dedup.errors)
    records = profile.pivot(dedup.records, ctx) if profile.pivot else dedup.records

    # -- Matching -----------------------------------------------------------
    index = RosterIndex.build(store.fetch_roster(), profile.match_options.include_nickname)
    matched, unmatched, notices = match_records(records, index, profile.match_options, policy)
    outcome.matched, outcome.unmatched = matched, unmatched
    outcome.notices.extend(notices)
    log.info("%s: matched=%d unmatched=%d", profile.name, len(matched), len(unmatched))

    # -- WarningCheck -------------------------------------------------------
    outcome.warnings.extend(collect_warnings(matched, profile.checks, policy, event_type))
    if mode == MODE_PREVIEW:
        return outcome

    blocking = blocking_warnings(outcome.warnings)
    if blocking:
        return _fail(outcome, STATE_BLOCKED, [_blocked_message(blocking)])
    if not matched:
        return _fail(outcome, STATE_NOTHING_MATCHED, [NO_PARTICIPANTS_MATCHED])

    # -- Committing + Logging -----------------------------------------------
    result = apply_upserts(matched, store, policy, profile.derive)
    outcome.updated, outcome.skipped = result.updated, result.skipped
    outcome.audit_entries = write_audit_entries(store, build_batch(actor, result.changes_by_pid))

    summary = {
        "matched": outcome.matched_count,
        "unmatched": outcome.unmatched_count,
        "updated": outcome.updated,
        "skipped": outcome.skipped,
    }
    if event_type is not None:
        summary["event_type"] = event_type
    log_admin_action(store, actor, profile.action, summary)

    outcome.state = STATE_COMMITTED
    log.info(
        "%s committed: updated=%d skipped=%d audit_entries=%d",
        profile.name, outcome.updated, outcome.skipped, len(outcome.audit_entries),
    )
    return outcome
