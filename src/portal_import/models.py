"""portal_import.models

Typed records passed between the import stages.

MatchResult and RowWarning are closed tagged unions: every consumer handles
each member explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Mapping, Union

from portal_import.normalize import canonical_value

# ---------------------------------------------------------------------------
# Import modes and final states
# ---------------------------------------------------------------------------

MODE_PREVIEW = "preview"
MODE_COMMIT = "commit"
VALID_MODES = frozenset({MODE_PREVIEW, MODE_COMMIT})

STATE_VALIDATION_FAILED = "validation_failed"
STATE_CONFLICT = "conflict"
STATE_PREVIEW = "preview"
STATE_BLOCKED = "blocked"
STATE_NOTHING_MATCHED = "nothing_matched"
STATE_COMMITTED = "committed"

FAILED_STATES = frozenset({
    STATE_VALIDATION_FAILED,
    STATE_CONFLICT,
    STATE_BLOCKED,
    STATE_NOTHING_MATCHED,
})

NO_PARTICIPANTS_MATCHED = "No participants matched. Nothing to import."
EMPTY_CSV = "CSV file is empty or has no data rows."


# ---------------------------------------------------------------------------
# Roster
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RosterRecord:
    """One persisted participant, as seen in a roster snapshot.

    `values` holds the mutable attributes keyed by roster field name
    (see portal_import.fields).
    """

    pid: str
    first_name: str | None = None
    last_name: str | None = None
    nickname: str | None = None
    team_name: str | None = None
    tnmt_id: str | None = None
    did: str | None = None
    has_doubles_partner: bool = False
    values: Mapping[str, Any] = field(default_factory=dict)

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def value(self, field_name: str) -> Any:
        return self.values.get(field_name)


# ---------------------------------------------------------------------------
# CSV records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NormalizedRecord:
    """Typed, deduplicated view of one CSV subject."""

    key: str
    display_name: str
    pid: str | None = None
    name_key: str | None = None
    team_name: str | None = None
    lane: str | None = None
    values: Mapping[str, Any] = field(default_factory=dict)
    row_number: int | None = field(default=None, compare=False)


# ---------------------------------------------------------------------------
# Match results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Matched:
    record: NormalizedRecord
    person: RosterRecord
    matched_by: str

    @property
    def pid(self) -> str:
        return self.person.pid

    def to_dict(self) -> dict[str, Any]:
        return {
            "pid": self.pid,
            "name": self.record.display_name,
            "matched_by": self.matched_by,
            "csv_team_name": self.record.team_name or "",
            "db_team_name": self.person.team_name or "",
            "values": {k: canonical_value(v) for k, v in self.record.values.items()},
            "existing": {
                k: canonical_value(self.person.value(k)) for k in self.record.values
            },
        }


@dataclass(frozen=True)
class Unmatched:
    record: NormalizedRecord
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "pid": self.record.pid or "",
            "name": self.record.display_name,
            "csv_team_name": self.record.team_name or "",
            "reason": self.reason,
        }


MatchResult = Union[Matched, Unmatched]


# ---------------------------------------------------------------------------
# Warnings
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TeamMismatch:
    type: ClassVar[str] = "team_mismatch"
    blocking: ClassVar[bool] = False

    pid: str
    name: str
    expected: str
    actual: str


@dataclass(frozen=True)
class LaneMismatch:
    type: ClassVar[str] = "lane_mismatch"
    blocking: ClassVar[bool] = False

    pid: str
    name: str
    expected: str
    actual: str


@dataclass(frozen=True)
class NoDoublesPartner:
    type: ClassVar[str] = "no_doubles_partner"
    blocking: ClassVar[bool] = True

    pid: str
    name: str


@dataclass(frozen=True)
class DuplicateIdentical:
    type: ClassVar[str] = "duplicate_identical"
    blocking: ClassVar[bool] = False

    key: str
    message: str


@dataclass(frozen=True)
class DuplicateConflicting:
    type: ClassVar[str] = "duplicate_conflicting"
    blocking: ClassVar[bool] = False

    key: str
    message: str


RowWarning = Union[TeamMismatch, LaneMismatch, NoDoublesPartner, DuplicateIdentical, DuplicateConflicting]


def warning_to_dict(warning: RowWarning) -> dict[str, Any]:
    if isinstance(warning, (TeamMismatch, LaneMismatch)):
        return {
            "type": warning.type,
            "pid": warning.pid,
            "name": warning.name,
            "expected": warning.expected,
            "actual": warning.actual,
        }
    if isinstance(warning, NoDoublesPartner):
        return {"type": warning.type, "pid": warning.pid, "name": warning.name}
    if isinstance(warning, (DuplicateIdentical, DuplicateConflicting)):
        return {"type": warning.type, "key": warning.key, "message": warning.message}
    raise TypeError(f"unknown warning variant: {type(warning).__name__}")


def blocking_warnings(warnings: list[RowWarning]) -> list[RowWarning]:
    return [w for w in warnings if w.blocking]


# ---------------------------------------------------------------------------
# Changes and audit
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FieldChange:
    field: str
    old_value: Any
    new_value: Any


@dataclass(frozen=True)
class AuditEntry:
    id: str
    actor: str
    pid: str
    field: str
    old_value: str | None
    new_value: str | None
    changed_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "actor": self.actor,
            "pid": self.pid,
            "field": self.field,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "changed_at": self.changed_at.isoformat(),
        }


# ---------------------------------------------------------------------------
# Outcome
# ---------------------------------------------------------------------------

@dataclass
class ImportOutcome:
    state: str
    mode: str
    matched: list[Matched] = field(default_factory=list)
    unmatched: list[Unmatched] = field(default_factory=list)
    warnings: list[RowWarning] = field(default_factory=list)
    notices: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    updated: int = 0
    skipped: int = 0
    audit_entries: list[AuditEntry] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.state not in FAILED_STATES

    @property
    def matched_count(self) -> int:
        return len(self.matched)

    @property
    def unmatched_count(self) -> int:
        return len(self.unmatched)

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state,
            "mode": self.mode,
            "updated": self.updated,
            "skipped": self.skipped,
            "matched_count": self.matched_count,
            "unmatched_count": self.unmatched_count,
            "matched": [m.to_dict() for m in self.matched],
            "unmatched": [u.to_dict() for u in self.unmatched],
            "warnings": [warning_to_dict(w) for w in self.warnings],
            "notices": self.notices,
            "errors": self.errors,
            "audit_entries": [e.to_dict() for e in self.audit_entries],
        }
