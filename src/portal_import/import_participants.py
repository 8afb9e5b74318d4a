"""portal_import.import_participants

Participant contact and entering-average CSV import.

Only PID is required; Email, Phone, City, Region, Country and Average are
applied when present. The handicap is never read from the file: it is
recomputed from the effective entering average on every commit.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping

from portal_import.matching import MatchOptions
from portal_import.models import NormalizedRecord
from portal_import.normalize import normalize_email, normalize_space, parse_number, sanitize_text, trim
from portal_import.reconcile import ImportProfile, RowContext
from portal_import.upsert import handicap_deriver

AVERAGE_QUANTUM = Decimal("0.01")

REQUIRED_COLUMNS = ("PID",)
OPTIONAL_COLUMNS = ("FirstName", "LastName", "Email", "Phone", "City", "Region", "Country", "Average")
HEADER_ALIASES = {
    "FirstName": ["FirstName", "First", "First Name"],
    "LastName": ["LastName", "Last", "Last Name"],
    "Email": ["Email", "E-mail", "Email Address"],
    "Phone": ["Phone", "Phone Number"],
    "City": ["City"],
    "Region": ["Region", "State", "Province"],
    "Country": ["Country"],
    "Average": ["Average", "Avg", "Entering Average", "Book Average"],
}


def parse_average(value: Any) -> Decimal | None:
    """Parse an entering average at the stored precision (two places)."""
    n = parse_number(value)
    if n is None:
        return None
    return Decimal(n).quantize(AVERAGE_QUANTUM, rounding=ROUND_HALF_UP)


def build_participant_record(
    raw_row: Mapping[str, str], idx: int, ctx: RowContext
) -> NormalizedRecord | None:
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
        values={
            "email": normalize_email(ctx.cell(raw_row, "Email")),
            "phone": sanitize_text(ctx.cell(raw_row, "Phone")),
            "city": normalize_space(ctx.cell(raw_row, "City")),
            "region": normalize_space(ctx.cell(raw_row, "Region")),
            "country": normalize_space(ctx.cell(raw_row, "Country")),
            "avg_entering": parse_average(ctx.cell(raw_row, "Average")),
        },
        row_number=idx,
    )


def _participants_conflict(a: NormalizedRecord, b: NormalizedRecord) -> bool:
    return dict(a.values) != dict(b.values)


PROFILE = ImportProfile(
    name="participants",
    action="import_participants",
    required_columns=REQUIRED_COLUMNS,
    optional_columns=OPTIONAL_COLUMNS,
    header_aliases=HEADER_ALIASES,
    to_record=build_participant_record,
    describe=lambda record: f'PID "{record.key}"',
    missing_row_notice=lambda raw_row, ctx: "Skipped row missing PID.",
    rows_conflict=_participants_conflict,
    match_options=MatchOptions(match_by_id=True, match_by_name=False),
    derive=handicap_deriver("avg_entering", "avg_handicap"),
)
