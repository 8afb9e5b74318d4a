"""portal_import.cross_reference

Compare matched CSV values against the roster's current values.

Advisory (reported, never blocks):
  team_mismatch       CSV team name does not prefix-match the roster team
  lane_mismatch       CSV lane differs from the roster lane for the event
Blocking (prevents commit, not preview):
  no_doubles_partner  doubles row for a participant with no partner on record
"""

from __future__ import annotations

from dataclasses import dataclass

from portal_import.config import ImportPolicy
from portal_import.fields import lane_field
from portal_import.matching import team_names_match
from portal_import.models import LaneMismatch, Matched, NoDoublesPartner, RowWarning, TeamMismatch
from portal_import.normalize import canonical_value, trim


@dataclass(frozen=True)
class CrossReferenceChecks:
    """Which comparisons an import kind runs."""

    team: bool = False
    lane: bool = False
    doubles_partner: bool = False


def build_cross_reference_warnings(
    match: Matched,
    checks: CrossReferenceChecks,
    policy: ImportPolicy,
    event_type: str | None = None,
) -> list[RowWarning]:
    record, person = match.record, match.person
    warnings: list[RowWarning] = []

    if checks.team and not team_names_match(
        record.team_name, person.team_name, policy.team_min_prefix_length
    ):
        warnings.append(TeamMismatch(
            pid=person.pid,
            name=record.display_name,
            expected=person.team_name or "",
            actual=record.team_name or "",
        ))

    if checks.lane and event_type:
        csv_lane = trim(record.lane)
        db_lane = trim(canonical_value(person.value(lane_field(event_type))))
        if csv_lane and db_lane and csv_lane != db_lane:
            warnings.append(LaneMismatch(
                pid=person.pid,
                name=record.display_name,
                expected=db_lane,
                actual=csv_lane,
            ))

    if checks.doubles_partner and event_type == "doubles" and not person.has_doubles_partner:
        warnings.append(NoDoublesPartner(pid=person.pid, name=record.display_name))

    return warnings


def collect_warnings(
    matched: list[Matched],
    checks: CrossReferenceChecks,
    policy: ImportPolicy,
    event_type: str | None = None,
) -> list[RowWarning]:
    warnings: list[RowWarning] = []
    for match in matched:
        warnings.extend(build_cross_reference_warnings(match, checks, policy, event_type))
    return warnings
