"""Unit test fixtures: an in-memory RosterStore."""

from __future__ import annotations

import dataclasses

import pytest

from portal_import.models import AuditEntry, FieldChange, RosterRecord


class InMemoryRosterStore:
    """RosterStore kept in dicts; records every write for assertions."""

    def __init__(self, roster: list[RosterRecord]) -> None:
        self.people: dict[str, RosterRecord] = {p.pid: p for p in roster}
        self.audit: list[AuditEntry] = []
        self.admin_actions: list[tuple[str, str, str | None]] = []
        self.apply_calls: list[tuple[str, list[FieldChange]]] = []
        self.append_calls = 0
        self.fetch_calls = 0

    def fetch_roster(self) -> list[RosterRecord]:
        self.fetch_calls += 1
        return list(self.people.values())

    def apply_changes(self, pid: str, changes: list[FieldChange]) -> None:
        self.apply_calls.append((pid, list(changes)))
        person = self.people[pid]
        values = dict(person.values)
        for change in changes:
            values[change.field] = change.new_value
        self.people[pid] = dataclasses.replace(person, values=values)

    def append_audit_entries(self, entries: list[AuditEntry]) -> None:
        self.append_calls += 1
        self.audit.extend(entries)

    def log_admin_action(self, actor: str, action: str, details: str | None) -> None:
        self.admin_actions.append((actor, action, details))

    def clear_audit_log(self) -> None:
        self.audit.clear()
        self.admin_actions.clear()

    def fetch_audit_log(self, pid: str | None = None, limit: int = 500) -> list[AuditEntry]:
        entries = [e for e in self.audit if pid is None or e.pid == pid]
        return list(reversed(entries))[:limit]


@pytest.fixture
def make_store():
    def _make(*roster: RosterRecord) -> InMemoryRosterStore:
        return InMemoryRosterStore(list(roster))
    return _make
