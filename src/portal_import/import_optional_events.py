"""portal_import.import_optional_events

Optional-events eligibility CSV import.

Columns: EID, Last, First, Best 3 of 9, Optional Scratch, All Events Hdcp.
A flag is set only by a literal "1"; anything else reads as 0. The summary
flag optional_events is 1 when any of the three is set.

EID is the participant PID. When no participant has that PID, a unique
first+last name match is accepted instead and reported as a notice.
Only participants present in the file are updated.
"""

from __future__ import annotations

from typing import Mapping

from portal_import.matching import MatchOptions
from portal_import.models import NormalizedRecord
from portal_import.normalize import full_name_key, parse_loose_flag, trim
from portal_import.reconcile import ImportProfile, RowContext

REQUIRED_COLUMNS = ("EID", "Last", "First", "Best 3 of 9", "Optional Scratch", "All Events Hdcp")

HEADER_ALIASES = {
    "EID": ["EID"],
    "Last": ["Last", "Last name", "Last Name"],
    "First": ["First", "First name", "First Name"],
    "Best 3 of 9": ["Best 3 of 9"],
    "Optional Scratch": ["Optional Scratch"],
    "All Events Hdcp": ["All Events Hdcp", "All Events Handicapped"],
}

FLAG_COLUMNS = {
    "optional_best_3_of_9": "Best 3 of 9",
    "optional_scratch": "Optional Scratch",
    "optional_all_events_hdcp": "All Events Hdcp",
}


def build_optional_events_record(
    raw_row: Mapping[str, str], idx: int, ctx: RowContext
) -> NormalizedRecord | None:
    eid = trim(ctx.cell(raw_row, "EID"))
    last = trim(ctx.cell(raw_row, "Last"))
    first = trim(ctx.cell(raw_row, "First"))
    if not eid or not last or not first:
        return None

    values = {
        name: parse_loose_flag(ctx.cell(raw_row, column))
        for name, column in FLAG_COLUMNS.items()
    }
    values["optional_events"] = 1 if any(values.values()) else 0
    return NormalizedRecord(
        key=eid,
        display_name=f"{first} {last}",
        pid=eid,
        name_key=full_name_key(first, last),
        values=values,
        row_number=idx,
    )


def _flags_conflict(a: NormalizedRecord, b: NormalizedRecord) -> bool:
    return any(a.values[name] != b.values[name] for name in FLAG_COLUMNS)


PROFILE = ImportProfile(
    name="optional_events",
    action="import_optional_events",
    required_columns=REQUIRED_COLUMNS,
    header_aliases=HEADER_ALIASES,
    to_record=build_optional_events_record,
    describe=lambda record: f'EID "{record.key}"',
    missing_row_notice=lambda raw_row, ctx: "Skipped row missing EID/Last/First values.",
    rows_conflict=_flags_conflict,
    match_options=MatchOptions(
        match_by_id=True,
        match_by_name=True,
        name_fallback=True,
        include_nickname=False,
        tie_breakers=(),
    ),
)
