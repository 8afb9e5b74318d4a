"""portal_import.fields

Registry of the roster fields an import may touch.

Field names double as audit-log field names, so they must stay stable:
  people columns:  email, phone, city, region, country, optional_*, scratch_masters
  per-event lanes: lane_team, lane_doubles, lane_singles
  per-event games: score_<event>_game1 .. score_<event>_game3
  averages:        avg_entering, avg_handicap (written to every event row)
"""

from __future__ import annotations

from dataclasses import dataclass

EVENT_TYPES = ("team", "doubles", "singles")
GAME_NUMBERS = (1, 2, 3)

PEOPLE_FIELDS = frozenset({
    "email",
    "phone",
    "city",
    "region",
    "country",
    "optional_events",
    "optional_best_3_of_9",
    "optional_scratch",
    "optional_all_events_hdcp",
    "scratch_masters",
})

AVERAGE_FIELDS = {
    "avg_entering": "entering_avg",
    "avg_handicap": "handicap",
}


def lane_field(event_type: str) -> str:
    return f"lane_{event_type}"


def score_field(event_type: str, game: int) -> str:
    return f"score_{event_type}_game{game}"


@dataclass(frozen=True)
class FieldTarget:
    """Where a field lives in storage.

    table 'people' → column on the people row.
    table 'scores' → column on the scores row for event_type, or on every
    event row when event_type is None.
    """

    table: str
    column: str
    event_type: str | None = None


def _build_targets() -> dict[str, FieldTarget]:
    targets = {name: FieldTarget("people", name) for name in PEOPLE_FIELDS}
    for event_type in EVENT_TYPES:
        targets[lane_field(event_type)] = FieldTarget("scores", "lane", event_type)
        for game in GAME_NUMBERS:
            targets[score_field(event_type, game)] = FieldTarget(
                "scores", f"game{game}", event_type
            )
    for name, column in AVERAGE_FIELDS.items():
        targets[name] = FieldTarget("scores", column, None)
    return targets


FIELD_TARGETS: dict[str, FieldTarget] = _build_targets()


def target_for(field: str) -> FieldTarget:
    try:
        return FIELD_TARGETS[field]
    except KeyError:
        raise KeyError(f"unknown roster field: {field!r}") from None
