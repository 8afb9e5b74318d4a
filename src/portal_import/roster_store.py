"""portal_import.roster_store

Roster access capability consumed by the import engine.

The engine never opens connections itself: callers hand it a RosterStore
bound to their own transaction. PostgresRosterStore is the psycopg
implementation over the schema in migrations/0001_portal_core.sql. It
never commits or rolls back; the caller owns the transaction boundary.
"""

from __future__ import annotations

import uuid
from typing import Any, Protocol

import psycopg

from portal_import.fields import (
    EVENT_TYPES,
    GAME_NUMBERS,
    PEOPLE_FIELDS,
    lane_field,
    score_field,
    target_for,
)
from portal_import.models import AuditEntry, FieldChange, RosterRecord

AUDIT_RESULTS_LIMIT = 500

_PEOPLE_VALUE_COLUMNS = tuple(sorted(PEOPLE_FIELDS))


class RosterStore(Protocol):
    def fetch_roster(self) -> list[RosterRecord]: ...

    def apply_changes(self, pid: str, changes: list[FieldChange]) -> None: ...

    def append_audit_entries(self, entries: list[AuditEntry]) -> None: ...

    def log_admin_action(self, actor: str, action: str, details: str | None) -> None: ...

    def clear_audit_log(self) -> None: ...

    def fetch_audit_log(self, pid: str | None = None, limit: int = AUDIT_RESULTS_LIMIT) -> list[AuditEntry]: ...


# ---------------------------------------------------------------------------
# PostgreSQL implementation
# ---------------------------------------------------------------------------

class PostgresRosterStore:
    """RosterStore over an open psycopg connection (caller manages transaction)."""

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    # -- reads --------------------------------------------------------------

    def fetch_roster(self) -> list[RosterRecord]:
        people = self._conn.execute(
            f"""
            SELECT p.pid, p.first_name, p.last_name, p.nickname,
                   p.tnmt_id, t.team_name, p.did,
                   (dp.partner_pid IS NOT NULL) AS has_doubles_partner,
                   {", ".join(f"p.{c}" for c in _PEOPLE_VALUE_COLUMNS)}
            FROM people p
            LEFT JOIN teams t ON t.tnmt_id = p.tnmt_id
            LEFT JOIN doubles_pairs dp ON dp.did = p.did
            ORDER BY p.pid ASC
            """
        ).fetchall()

        score_rows = self._conn.execute(
            """
            SELECT pid, event_type, lane, game1, game2, game3, entering_avg, handicap
            FROM scores
            ORDER BY pid ASC, event_type ASC
            """
        ).fetchall()
        scores: dict[str, dict[str, tuple]] = {}
        for row in score_rows:
            scores.setdefault(str(row[0]), {})[row[1]] = row

        roster: list[RosterRecord] = []
        for row in people:
            pid = str(row[0])
            values: dict[str, Any] = dict(zip(_PEOPLE_VALUE_COLUMNS, row[8:]))
            values.update(_score_values(scores.get(pid, {})))
            roster.append(RosterRecord(
                pid=pid,
                first_name=row[1],
                last_name=row[2],
                nickname=row[3],
                tnmt_id=row[4],
                team_name=row[5],
                did=row[6],
                has_doubles_partner=bool(row[7]),
                values=values,
            ))
        return roster

    def fetch_audit_log(self, pid: str | None = None, limit: int = AUDIT_RESULTS_LIMIT) -> list[AuditEntry]:
        where = "WHERE pid = %s" if pid is not None else ""
        params: list[Any] = [pid] if pid is not None else []
        params.append(limit)
        rows = self._conn.execute(
            f"""
            SELECT id, admin_email, pid, field, old_value, new_value, changed_at
            FROM audit_logs
            {where}
            ORDER BY changed_at DESC, field ASC
            LIMIT %s
            """,
            params,
        ).fetchall()
        return [
            AuditEntry(
                id=str(r[0]), actor=r[1], pid=r[2], field=r[3],
                old_value=r[4], new_value=r[5], changed_at=r[6],
            )
            for r in rows
        ]

    # -- writes -------------------------------------------------------------

    def apply_changes(self, pid: str, changes: list[FieldChange]) -> None:
        people_cols: dict[str, Any] = {}
        per_event: dict[str, dict[str, Any]] = {et: {} for et in EVENT_TYPES}
        for change in changes:
            target = target_for(change.field)
            if target.table == "people":
                people_cols[target.column] = change.new_value
            elif target.event_type is None:
                for et in EVENT_TYPES:
                    per_event[et][target.column] = change.new_value
            else:
                per_event[target.event_type][target.column] = change.new_value

        if people_cols:
            assignments = ", ".join(f"{col} = %s" for col in people_cols)
            self._conn.execute(
                f"UPDATE people SET {assignments}, updated_at = now() WHERE pid = %s",
                (*people_cols.values(), pid),
            )

        for event_type, cols in per_event.items():
            if not cols:
                continue
            names = ", ".join(cols)
            placeholders = ", ".join(["%s"] * len(cols))
            updates = ", ".join(f"{col} = EXCLUDED.{col}" for col in cols)
            self._conn.execute(
                f"""
                INSERT INTO scores (id, pid, event_type, {names}, updated_at)
                VALUES (%s, %s, %s, {placeholders}, now())
                ON CONFLICT (pid, event_type) DO UPDATE SET
                  {updates},
                  updated_at = now()
                """,
                (uuid.uuid4(), pid, event_type, *cols.values()),
            )

    def append_audit_entries(self, entries: list[AuditEntry]) -> None:
        if not entries:
            return
        placeholders = ", ".join(["(%s, %s, %s, %s, %s, %s, %s)"] * len(entries))
        params: list[Any] = []
        for e in entries:
            params.extend((e.id, e.actor, e.pid, e.field, e.old_value, e.new_value, e.changed_at))
        self._conn.execute(
            f"""
            INSERT INTO audit_logs (id, admin_email, pid, field, old_value, new_value, changed_at)
            VALUES {placeholders}
            """,
            params,
        )

    def log_admin_action(self, actor: str, action: str, details: str | None) -> None:
        self._conn.execute(
            """
            INSERT INTO admin_actions (id, admin_email, action, details)
            VALUES (%s, %s, %s, %s)
            """,
            (uuid.uuid4(), actor, action, details),
        )

    def clear_audit_log(self) -> None:
        self._conn.execute("DELETE FROM audit_logs")
        self._conn.execute("DELETE FROM admin_actions")


def _score_values(rows_by_event: dict[str, tuple]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for event_type in EVENT_TYPES:
        row = rows_by_event.get(event_type)
        values[lane_field(event_type)] = row[2] if row else None
        for game in GAME_NUMBERS:
            values[score_field(event_type, game)] = row[2 + game] if row else None

    # Averages are written to every event row; read the first one present.
    for name, offset in (("avg_entering", 6), ("avg_handicap", 7)):
        values[name] = next(
            (rows_by_event[et][offset] for et in EVENT_TYPES
             if et in rows_by_event and rows_by_event[et][offset] is not None),
            None,
        )
    return values

