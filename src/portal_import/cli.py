"""portal_import.cli

Command-line entrypoint for tournament portal CSV imports.

Modes (--mode):
  lanes            lane assignments keyed by PID
  scores           game scores for one event (--event-type required)
  optional_events  optional-event eligibility keyed by EID
  scratch_masters  Scratch Masters eligibility keyed by bowler name
  participants     contact details and entering averages keyed by PID
  audit_clear      delete the whole audit log (--confirm-clear required)

Imports run in preview unless --commit is given. A commit runs in one
transaction: it is committed only when the import reaches the committed
state, and rolled back when blocked, failed or --dry-run.

Usage:
    portal-import \\
        --mode scores \\
        --event-type doubles \\
        --db-dsn "$DB_DSN" \\
        --csv-path "exports/doubles_scores.csv" \\
        --actor "admin@example.com" \\
        --commit
"""

from __future__ import annotations

import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path

import click
import psycopg

from portal_import import (
    import_lanes,
    import_optional_events,
    import_participants,
    import_scores,
    import_scratch_masters,
)
from portal_import.audit import clear_audit_log
from portal_import.config import PolicyValidationError, load_policy
from portal_import.fields import EVENT_TYPES
from portal_import.models import MODE_COMMIT, MODE_PREVIEW, STATE_COMMITTED, ImportOutcome, warning_to_dict
from portal_import.reconcile import ImportProfile, run_import
from portal_import.roster_store import PostgresRosterStore
from portal_import.shared import (
    ImportCounters,
    RejectWriter,
    build_import_report,
    read_csv_rows,
    write_run_report,
)

IMPORT_PROFILES: dict[str, ImportProfile] = {
    p.name: p
    for p in (
        import_lanes.PROFILE,
        import_scores.PROFILE,
        import_optional_events.PROFILE,
        import_scratch_masters.PROFILE,
        import_participants.PROFILE,
    )
}
MODE_AUDIT_CLEAR = "audit_clear"


# ---------------------------------------------------------------------------
# Flag validation
# ---------------------------------------------------------------------------

def _validate_import_flags(
    mode: str,
    csv_path: str | None,
    event_type: str | None,
    run_id: str,
) -> None:
    required = {"--csv-path": csv_path}
    if IMPORT_PROFILES[mode].requires_event_type:
        required["--event-type"] = event_type
    missing = [k for k, v in required.items() if v is None]
    if missing:
        click.echo(
            f"[{run_id}] FATAL: {mode} mode requires: {', '.join(missing)}",
            err=True,
        )
        sys.exit(1)


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

def _echo_outcome(run_id: str, outcome: ImportOutcome, rejects: RejectWriter) -> None:
    for error in outcome.errors:
        click.echo(f"[{run_id}] ERROR: {error}", err=True)
    for warning in outcome.warnings:
        details = warning_to_dict(warning)
        label = "BLOCKING" if warning.blocking else "WARNING"
        click.echo(f"[{run_id}] {label}: {details}")
    for notice in outcome.notices:
        click.echo(f"[{run_id}] NOTICE: {notice}")
    for miss in outcome.unmatched:
        rejects.write(miss.to_dict(), miss.reason)
    if outcome.unmatched:
        click.echo(f"[{run_id}] {len(outcome.unmatched)} unmatched row(s) written to rejects")


# ---------------------------------------------------------------------------
# Runs
# ---------------------------------------------------------------------------

def _run_audit_clear(run_id: str, db_dsn: str, actor: str, confirm_clear: bool, dry_run: bool) -> None:
    if not confirm_clear:
        click.echo(
            f"[{run_id}] FATAL: audit_clear deletes every audit entry; pass --confirm-clear",
            err=True,
        )
        sys.exit(1)
    conn = psycopg.connect(db_dsn, autocommit=False)
    try:
        clear_audit_log(PostgresRosterStore(conn), actor)
        if dry_run:
            conn.rollback()
            click.echo(f"[{run_id}] [dry-run] All changes rolled back.")
        else:
            conn.commit()
            click.echo(f"[{run_id}] Audit log cleared by {actor}")
    except psycopg.Error as exc:
        conn.rollback()
        click.echo(f"[{run_id}] FATAL: database error, rolled back: {exc}", err=True)
        sys.exit(1)
    finally:
        conn.close()


def _run_csv_import(
    run_id: str,
    started_at: str,
    mode: str,
    db_dsn: str,
    csv_path: str,
    event_type: str | None,
    actor: str,
    commit: bool,
    dry_run: bool,
    policy_file: str | None,
    rejects_path: str,
) -> None:
    try:
        policy = load_policy(Path(policy_file) if policy_file else None)
    except (PolicyValidationError, FileNotFoundError) as exc:
        click.echo(f"[{run_id}] FATAL: invalid import policy: {exc}", err=True)
        sys.exit(1)

    rows = read_csv_rows(Path(csv_path))
    click.echo(f"[{run_id}] Read {len(rows)} rows from {csv_path}")

    rejects = RejectWriter(Path(rejects_path))
    conn = psycopg.connect(db_dsn, autocommit=False)
    try:
        outcome = run_import(
            IMPORT_PROFILES[mode],
            rows,
            mode=MODE_COMMIT if commit else MODE_PREVIEW,
            store=PostgresRosterStore(conn),
            actor=actor,
            event_type=event_type,
            policy=policy,
        )
        if outcome.state == STATE_COMMITTED and not dry_run:
            conn.commit()
        else:
            conn.rollback()
            if dry_run and outcome.state == STATE_COMMITTED:
                click.echo(f"[{run_id}] [dry-run] All changes rolled back.")
    except psycopg.Error as exc:
        conn.rollback()
        click.echo(f"[{run_id}] FATAL: database error, rolled back: {exc}", err=True)
        sys.exit(1)
    finally:
        conn.close()

    try:
        _echo_outcome(run_id, outcome, rejects)
    finally:
        rejects.close()

    counters = ImportCounters.from_outcome(len(rows), outcome)
    counters.rejects_written = rejects.count
    click.echo(build_import_report(counters, outcome.state, dry_run))
    report_path = write_run_report(
        run_id, started_at, mode, dry_run,
        {"csv_path": csv_path, "rejects_path": rejects_path, "policy_hash": policy.yaml_hash or "builtin"},
        counters,
        outcome,
    )
    click.echo(f"[{run_id}] Run report: {report_path}")

    if not outcome.ok:
        click.echo(f"[{run_id}] Import ended in state {outcome.state}; exiting non-zero", err=True)
        sys.exit(1)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

@click.command()
@click.option(
    "--mode",
    required=True,
    type=click.Choice(sorted(IMPORT_PROFILES) + [MODE_AUDIT_CLEAR]),
    help="Import mode",
)
@click.option("--db-dsn", required=True, help="PostgreSQL DSN")
@click.option("--csv-path", default=None, type=click.Path(exists=True, dir_okay=False), help="Input CSV")
@click.option(
    "--event-type",
    default=None,
    type=click.Choice(list(EVENT_TYPES)),
    help="[scores] Event the scores belong to",
)
@click.option("--actor", required=True, help="Admin email recorded in the audit log")
@click.option(
    "--commit/--preview",
    default=False,
    show_default=True,
    help="Apply changes, or only report what would change",
)
@click.option("--dry-run", is_flag=True, default=False, help="Run the commit path, then roll back")
@click.option("--policy-file", default=None, type=click.Path(), help="YAML import policy (built-in defaults if omitted)")
@click.option(
    "--rejects-path",
    default="./artifacts/rejects/portal_import_rejects.csv",
    show_default=True,
)
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option("--confirm-clear", is_flag=True, default=False, help="[audit_clear] Required to clear the audit log")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Debug logging")
def main(
    mode: str,
    db_dsn: str,
    csv_path: str | None,
    event_type: str | None,
    actor: str,
    commit: bool,
    dry_run: bool,
    policy_file: str | None,
    rejects_path: str,
    run_id: str | None,
    confirm_clear: bool,
    verbose: bool,
) -> None:
    """Tournament portal CSV import CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.now(timezone.utc).isoformat()

    click.echo(f"[{run_id}] Starting {mode} run (commit={commit}, dry_run={dry_run})")

    if mode == MODE_AUDIT_CLEAR:
        _run_audit_clear(run_id, db_dsn, actor, confirm_clear, dry_run)
        return

    _validate_import_flags(mode, csv_path, event_type, run_id)
    _run_csv_import(
        run_id, started_at, mode, db_dsn,
        csv_path=csv_path,  # type: ignore[arg-type]
        event_type=event_type,
        actor=actor,
        commit=commit,
        dry_run=dry_run,
        policy_file=policy_file,
        rejects_path=rejects_path,
    )


if __name__ == "__main__":
    main()
