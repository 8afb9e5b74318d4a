"""portal_import.import_scratch_masters

Scratch Masters eligibility CSV import.

Columns: Bowler Name, SM? (aliases SM, Scratch Masters, ScratchMasters).
SM? must be exactly 0 or 1; any other value rejects the whole file.
Bowlers are matched by normalized full name; when both a nickname and a
legal first name hit, a single nickname match wins.
"""

from __future__ import annotations

from typing import Mapping

from portal_import.dedup import RowValueError
from portal_import.matching import TIE_BREAK_NAME_SOURCE, MatchOptions
from portal_import.models import NormalizedRecord
from portal_import.normalize import normalize_name, normalize_space, parse_flag
from portal_import.reconcile import ImportProfile, RowContext

REQUIRED_COLUMNS = ("Bowler Name", "SM?")
HEADER_ALIASES = {
    "Bowler Name": ["Bowler Name", "Bowler name"],
    "SM?": ["SM?", "SM", "Scratch Masters", "ScratchMasters"],
}


def build_scratch_masters_record(
    raw_row: Mapping[str, str], idx: int, ctx: RowContext
) -> NormalizedRecord | None:
    name = normalize_space(ctx.cell(raw_row, "Bowler Name"))
    name_key = normalize_name(name)
    if name_key is None:
        return None
    flag = parse_flag(ctx.cell(raw_row, "SM?"))
    if flag is None:
        raise RowValueError(f'Row for "{name}" has invalid SM? value; expected 0 or 1.')
    return NormalizedRecord(
        key=name_key,
        display_name=name,
        name_key=name_key,
        values={"scratch_masters": flag},
        row_number=idx,
    )


def skipped_scratch_masters_row(raw_row: Mapping[str, str], ctx: RowContext) -> str | None:
    if normalize_space(ctx.cell(raw_row, "Bowler Name")) is None:
        return "Skipped row with empty Bowler Name."
    return None


PROFILE = ImportProfile(
    name="scratch_masters",
    action="import_scratch_masters",
    required_columns=REQUIRED_COLUMNS,
    header_aliases=HEADER_ALIASES,
    to_record=build_scratch_masters_record,
    describe=lambda record: f'Bowler "{record.display_name}"',
    missing_row_notice=skipped_scratch_masters_row,
    match_options=MatchOptions(
        match_by_id=False,
        match_by_name=True,
        include_nickname=True,
        tie_breakers=(TIE_BREAK_NAME_SOURCE,),
    ),
)
