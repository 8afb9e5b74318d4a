"""portal_import.import_scores

Game-score CSV import from the bowling scoring software.

The export has one row per bowler per game:
    Bowler name, Team name, Lane number, Game number, Scratch [, Game name]

Rows are deduplicated on (normalized bowler name, team, game number), then
pivoted into one record per bowler and team carrying game1..game3 for the
selected event, so same-named bowlers on different teams stay apart. Scores
are whole pins; a row whose Scratch cell is not an integer is dropped with a
notice.

Bowlers are matched by name (legal first name or nickname), with the team
name breaking ties. Doubles and singles exports put "Lane N" in the team
column; those values never disqualify a candidate.

The "Game name" column, when present, encodes the event as a T/D/S prefix
("2/13/ 7:00 PM  T1-Teams 1"); a file whose prefix disagrees with the
selected event is rejected before anything is matched.
"""

from __future__ import annotations

import re
from typing import Mapping, Sequence

from portal_import.cross_reference import CrossReferenceChecks
from portal_import.fields import GAME_NUMBERS, score_field
from portal_import.matching import TIE_BREAK_TEAM, MatchOptions
from portal_import.models import NormalizedRecord
from portal_import.normalize import is_lane_identifier, normalize_lane, normalize_name, normalize_space, parse_int, trim
from portal_import.reconcile import ImportProfile, RowContext

REQUIRED_COLUMNS = ("Bowler name", "Team name", "Lane number", "Game number", "Scratch")
OPTIONAL_COLUMNS = ("Game name",)
HEADER_ALIASES = {
    "Bowler name": ["Bowler name", "Bowler Name"],
    "Team name": ["Team name", "Team Name"],
    "Lane number": ["Lane number", "Lane Number", "Lane"],
    "Game number": ["Game number", "Game Number"],
    "Scratch": ["Scratch"],
    "Game name": ["Game name", "Game Name"],
}

EVENT_PREFIX_MAP = {"T": "team", "D": "doubles", "S": "singles"}
_GAME_NAME_RE = re.compile(r"([TDS])\d+-")


# ---------------------------------------------------------------------------
# Event-type detection
# ---------------------------------------------------------------------------

def detect_csv_event_type(game_name: str | None) -> str | None:
    """Return the event encoded in a "Game name" value, or None if undetectable."""
    if not game_name:
        return None
    m = _GAME_NAME_RE.search(game_name.strip())
    if not m:
        return None
    return EVENT_PREFIX_MAP.get(m.group(1))


def check_event_type(rows: Sequence[Mapping[str, str]], ctx: RowContext) -> list[str]:
    if not rows:
        return []
    csv_event_type = detect_csv_event_type(ctx.cell(rows[0], "Game name"))
    if csv_event_type is None or csv_event_type == ctx.event_type:
        return []
    return [
        f"event_type_mismatch: CSV contains {csv_event_type} scores but you selected "
        f"{ctx.event_type}. Please select the correct event type."
    ]


# ---------------------------------------------------------------------------
# Rows → per-game records → per-bowler records
# ---------------------------------------------------------------------------

def _scratch_cell(raw_row: Mapping[str, str], ctx: RowContext) -> tuple[str | None, int | None]:
    raw = trim(ctx.cell(raw_row, "Scratch"))
    return raw, parse_int(raw)


def bowler_group(team_name: str | None, lane: str | None) -> str:
    """Team part of a bowler key; lane-only exports group by lane."""
    if team_name and not is_lane_identifier(team_name):
        return team_name.lower()
    if lane:
        return f"lane {lane}"
    return (team_name or "").lower()


def build_score_record(raw_row: Mapping[str, str], idx: int, ctx: RowContext) -> NormalizedRecord | None:
    name = normalize_space(ctx.cell(raw_row, "Bowler name"))
    name_key = normalize_name(name)
    game = parse_int(ctx.cell(raw_row, "Game number"))
    raw_scratch, scratch = _scratch_cell(raw_row, ctx)
    if name_key is None or game not in GAME_NUMBERS:
        return None
    if raw_scratch is not None and scratch is None:
        return None
    team_name = normalize_space(ctx.cell(raw_row, "Team name"))
    lane = normalize_lane(ctx.cell(raw_row, "Lane number"), ctx.policy.lane_placeholders)
    return NormalizedRecord(
        key=f"{name_key}|{bowler_group(team_name, lane)}|{game}",
        display_name=name,
        name_key=name_key,
        team_name=team_name,
        lane=lane,
        values={score_field(ctx.event_type, game): scratch},
        row_number=idx,
    )


def skipped_score_row(raw_row: Mapping[str, str], ctx: RowContext) -> str | None:
    name = normalize_space(ctx.cell(raw_row, "Bowler name"))
    if name is None:
        return None
    if parse_int(ctx.cell(raw_row, "Game number")) not in GAME_NUMBERS:
        return f'Skipped row for "{name}" with invalid Game number.'
    raw_scratch, _ = _scratch_cell(raw_row, ctx)
    return f'Skipped row for "{name}" with invalid Scratch value "{raw_scratch}".'


def _score_rows_conflict(a: NormalizedRecord, b: NormalizedRecord) -> bool:
    return dict(a.values) != dict(b.values) or a.lane != b.lane


def pivot_by_bowler(records: list[NormalizedRecord], ctx: RowContext) -> list[NormalizedRecord]:
    """Fold per-game records into one record per bowler and team, in first-seen order.

    Team name and lane come from the bowler's first row.
    """
    firsts: dict[str, NormalizedRecord] = {}
    games: dict[str, dict] = {}
    for record in records:
        bowler_key = record.key.rsplit("|", 1)[0]
        if bowler_key not in firsts:
            firsts[bowler_key] = record
            games[bowler_key] = {
                score_field(ctx.event_type, g): None for g in GAME_NUMBERS
            }
        games[bowler_key].update(record.values)

    return [
        NormalizedRecord(
            key=bowler_key,
            display_name=first.display_name,
            name_key=first.name_key,
            team_name=first.team_name,
            lane=first.lane,
            values=games[bowler_key],
            row_number=first.row_number,
        )
        for bowler_key, first in firsts.items()
    ]


PROFILE = ImportProfile(
    name="scores",
    action="import_scores",
    required_columns=REQUIRED_COLUMNS,
    optional_columns=OPTIONAL_COLUMNS,
    header_aliases=HEADER_ALIASES,
    to_record=build_score_record,
    describe=lambda record: f'Bowler "{record.display_name}" game {record.key.rsplit("|", 1)[-1]}',
    missing_row_notice=skipped_score_row,
    rows_conflict=_score_rows_conflict,
    pivot=pivot_by_bowler,
    precheck=check_event_type,
    match_options=MatchOptions(
        match_by_id=False,
        match_by_name=True,
        include_nickname=True,
        tie_breakers=(TIE_BREAK_TEAM,),
    ),
    checks=CrossReferenceChecks(team=True, lane=True, doubles_partner=True),
    requires_event_type=True,
)
