"""portal_import.matching

Resolve NormalizedRecords to exactly one roster participant.

Resolution order per record:
  1. exact PID lookup when the record carries an id
  2. name-index lookup (legal first name + last name, and nickname + last name)
       0 candidates → Unmatched("not found")
       1 candidate  → Matched
      >1 candidates → tie-breakers, each narrowing the surviving set:
         "team"        CSV team name vs roster team name, either may be a
                         case-insensitive prefix of the other (truncated exports)
         "name_source" a nickname hit beats first-name hits
       exactly one survivor → Matched, otherwise
       Unmatched("multiple matches; disambiguation failed")

The RosterIndex is built once per import and never mutated; candidates are
referenced by pid and kept sorted so repeated runs resolve identically.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping, Sequence

from portal_import.config import ImportPolicy
from portal_import.models import Matched, NormalizedRecord, RosterRecord, Unmatched
from portal_import.normalize import full_name_key, is_lane_identifier, trim

log = logging.getLogger(__name__)

SOURCE_FIRST = "first"
SOURCE_NICKNAME = "nickname"

TIE_BREAK_TEAM = "team"
TIE_BREAK_NAME_SOURCE = "name_source"
VALID_TIE_BREAKERS = frozenset({TIE_BREAK_TEAM, TIE_BREAK_NAME_SOURCE})

REASON_NOT_FOUND = "not found"
REASON_AMBIGUOUS = "multiple matches; disambiguation failed"


# ---------------------------------------------------------------------------
# Index
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Candidate:
    pid: str
    source: str


class RosterIndex:
    """Immutable pid and name lookups over one roster snapshot."""

    def __init__(
        self,
        by_pid: Mapping[str, RosterRecord],
        by_name: Mapping[str, tuple[Candidate, ...]],
    ) -> None:
        self._by_pid = MappingProxyType(dict(by_pid))
        self._by_name = MappingProxyType(dict(by_name))

    @classmethod
    def build(cls, roster: Iterable[RosterRecord], include_nickname: bool = True) -> "RosterIndex":
        people = sorted(roster, key=lambda p: str(p.pid))
        by_pid = {str(p.pid): p for p in people}
        by_name: dict[str, list[Candidate]] = {}
        for person in people:
            keys = [(full_name_key(person.first_name, person.last_name), SOURCE_FIRST)]
            if include_nickname and trim(person.nickname):
                keys.append((full_name_key(person.nickname, person.last_name), SOURCE_NICKNAME))
            for key, source in keys:
                if key is None:
                    continue
                bucket = by_name.setdefault(key, [])
                if any(c.pid == str(person.pid) for c in bucket):
                    continue
                bucket.append(Candidate(pid=str(person.pid), source=source))
        return cls(by_pid, {k: tuple(v) for k, v in by_name.items()})

    def __len__(self) -> int:
        return len(self._by_pid)

    def get(self, pid: str | None) -> RosterRecord | None:
        if pid is None:
            return None
        return self._by_pid.get(str(pid).strip())

    def person(self, candidate: Candidate) -> RosterRecord:
        return self._by_pid[candidate.pid]

    def candidates(self, name_key: str | None) -> tuple[Candidate, ...]:
        if not name_key:
            return ()
        return self._by_name.get(name_key, ())


# ---------------------------------------------------------------------------
# Team-name comparison
# ---------------------------------------------------------------------------

def team_names_match(
    csv_team: str | None,
    db_team: str | None,
    min_prefix_length: int = 1,
) -> bool:
    """Return True when two team names plausibly refer to the same team.

    Scoring software truncates long team names, so either name may be a
    case-insensitive prefix of the other, provided the shorter one has at
    least min_prefix_length characters. Missing values and "Lane N" team
    columns cannot be compared and count as a match.
    """
    a = (trim(csv_team) or "").lower()
    b = (trim(db_team) or "").lower()
    if not a or not b:
        return True
    if is_lane_identifier(a):
        return True
    if a == b:
        return True
    shorter, longer = sorted((a, b), key=len)
    return len(shorter) >= min_prefix_length and longer.startswith(shorter)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MatchOptions:
    """How one import kind resolves identities."""

    match_by_id: bool = True
    match_by_name: bool = True
    name_fallback: bool = False
    include_nickname: bool = True
    tie_breakers: tuple[str, ...] = (TIE_BREAK_TEAM,)

    def __post_init__(self) -> None:
        unknown = set(self.tie_breakers) - VALID_TIE_BREAKERS
        if unknown:
            raise ValueError(f"unknown tie-breakers: {sorted(unknown)}")


def _narrow(
    tie_breaker: str,
    candidates: Sequence[Candidate],
    record: NormalizedRecord,
    index: RosterIndex,
    policy: ImportPolicy,
) -> list[Candidate]:
    if tie_breaker == TIE_BREAK_TEAM:
        return [
            c for c in candidates
            if team_names_match(
                record.team_name,
                index.person(c).team_name,
                policy.team_min_prefix_length,
            )
        ]
    if tie_breaker == TIE_BREAK_NAME_SOURCE:
        nicknames = [c for c in candidates if c.source == SOURCE_NICKNAME]
        if nicknames:
            return nicknames
        return [c for c in candidates if c.source == SOURCE_FIRST]
    raise ValueError(f"unknown tie-breaker: {tie_breaker!r}")


def resolve_record(
    record: NormalizedRecord,
    index: RosterIndex,
    options: MatchOptions,
    policy: ImportPolicy,
) -> tuple[Matched | Unmatched, str | None]:
    """Resolve one record. Returns (result, notice-or-None)."""
    matched_by = "name"
    if record.pid and options.match_by_id:
        person = index.get(record.pid)
        if person is not None:
            return Matched(record=record, person=person, matched_by="id"), None
        if not options.name_fallback:
            return Unmatched(record=record, reason=REASON_NOT_FOUND), None
        matched_by = "name_fallback"

    if not options.match_by_name:
        return Unmatched(record=record, reason=REASON_NOT_FOUND), None

    candidates = list(index.candidates(record.name_key))
    if not candidates:
        return Unmatched(record=record, reason=REASON_NOT_FOUND), None

    for tie_breaker in options.tie_breakers:
        if len(candidates) <= 1:
            break
        candidates = _narrow(tie_breaker, candidates, record, index, policy)
        log.debug("tie-breaker %s left %d candidate(s) for %r", tie_breaker, len(candidates), record.key)

    if len(candidates) != 1:
        return Unmatched(record=record, reason=REASON_AMBIGUOUS), None

    person = index.person(candidates[0])
    notice = None
    if matched_by == "name_fallback":
        notice = (
            f'Matched "{record.display_name}" by name because ID "{record.pid}" '
            "was not found."
        )
    return Matched(record=record, person=person, matched_by=matched_by), notice


def match_records(
    records: Iterable[NormalizedRecord],
    index: RosterIndex,
    options: MatchOptions,
    policy: ImportPolicy,
) -> tuple[list[Matched], list[Unmatched], list[str]]:
    matched: list[Matched] = []
    unmatched: list[Unmatched] = []
    notices: list[str] = []
    for record in records:
        result, notice = resolve_record(record, index, options, policy)
        if notice:
            notices.append(notice)
        if isinstance(result, Matched):
            matched.append(result)
        else:
            unmatched.append(result)
    return matched, unmatched, notices
