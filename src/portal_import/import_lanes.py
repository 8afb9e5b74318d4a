"""portal_import.import_lanes

Lane-assignment CSV import.

Columns: PID, T_Lane, D_Lane, S_Lane (FirstName, LastName, Team_Name are
carried for display only). Rows are keyed and matched by PID. Blank lanes
and the spreadsheet placeholder "#N/A" are treated as no value, so they
never erase a lane already on record.
"""

from __future__ import annotations

from typing import Mapping

from portal_import.fields import lane_field
from portal_import.matching import MatchOptions
from portal_import.models import NormalizedRecord
from portal_import.normalize import normalize_lane, trim
from portal_import.reconcile import ImportProfile, RowContext

REQUIRED_COLUMNS = ("PID", "T_Lane", "D_Lane", "S_Lane")
DISPLAY_COLUMNS = ("FirstName", "LastName", "Team_Name")

LANE_COLUMNS = {
    "team": "T_Lane",
    "doubles": "D_Lane",
    "singles": "S_Lane",
}


def build_lane_record(raw_row: Mapping[str, str], idx: int, ctx: RowContext) -> NormalizedRecord | None:
    pid = trim(ctx.cell(raw_row, "PID"))
    if pid is None:
        return None
    name = " ".join(
        v for v in (trim(ctx.cell(raw_row, "FirstName")), trim(ctx.cell(raw_row, "LastName"))) if v
    )
    return NormalizedRecord(
        key=pid,
        display_name=name or pid,
        pid=pid,
        team_name=trim(ctx.cell(raw_row, "Team_Name")),
        values={
            lane_field(event_type): normalize_lane(
                ctx.cell(raw_row, column), ctx.policy.lane_placeholders
            )
            for event_type, column in LANE_COLUMNS.items()
        },
        row_number=idx,
    )


def _lanes_conflict(a: NormalizedRecord, b: NormalizedRecord) -> bool:
    return dict(a.values) != dict(b.values)


PROFILE = ImportProfile(
    name="lanes",
    action="import_lanes",
    required_columns=REQUIRED_COLUMNS,
    optional_columns=DISPLAY_COLUMNS,
    to_record=build_lane_record,
    describe=lambda record: f'PID "{record.key}"',
    missing_row_notice=lambda raw_row, ctx: "Skipped row missing PID.",
    rows_conflict=_lanes_conflict,
    match_options=MatchOptions(match_by_id=True, match_by_name=False),
)
