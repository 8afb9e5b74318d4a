"""Unit tests for the per-CSV import profiles."""

from __future__ import annotations

from decimal import Decimal

import pytest

from portal_import import (
    import_lanes,
    import_optional_events,
    import_participants,
    import_scores,
    import_scratch_masters,
)
from portal_import.config import DEFAULT_POLICY, ImportPolicy
from portal_import.models import (
    MODE_COMMIT,
    MODE_PREVIEW,
    STATE_COMMITTED,
    STATE_CONFLICT,
    STATE_PREVIEW,
    LaneMismatch,
    RosterRecord,
    TeamMismatch,
)
from portal_import.reconcile import RowContext, run_import

ACTOR = "admin@example.com"


def _person(pid, first, last, nickname=None, team=None, values=None):
    return RosterRecord(
        pid=pid, first_name=first, last_name=last, nickname=nickname,
        team_name=team, has_doubles_partner=True, values=values or {},
    )


# ---------------------------------------------------------------------------
# Lanes
# ---------------------------------------------------------------------------

class TestLanes:
    def test_record_uses_display_columns(self):
        ctx = RowContext(
            header_map={c: c for c in import_lanes.REQUIRED_COLUMNS + import_lanes.DISPLAY_COLUMNS},
            policy=DEFAULT_POLICY,
        )
        row = {"PID": " 100 ", "T_Lane": "27", "D_Lane": "#N/A", "S_Lane": "", "FirstName": "Ann", "LastName": "Lee", "Team_Name": "Pin Pals"}
        record = import_lanes.build_lane_record(row, 1, ctx)
        assert record.key == "100"
        assert record.display_name == "Ann Lee"
        assert record.team_name == "Pin Pals"
        assert dict(record.values) == {"lane_team": "27", "lane_doubles": None, "lane_singles": None}

    def test_policy_placeholders(self):
        ctx = RowContext(header_map={c: c for c in import_lanes.REQUIRED_COLUMNS}, policy=ImportPolicy(lane_placeholders=frozenset({"TBD"})))
        record = import_lanes.build_lane_record({"PID": "1", "T_Lane": "TBD", "D_Lane": "#N/A", "S_Lane": "2"}, 1, ctx)
        assert record.values["lane_team"] is None
        assert record.values["lane_doubles"] == "#N/A"

    def test_missing_pid_notice(self, make_store):
        store = make_store(_person("1", "Ann", "Lee"))
        rows = [{"PID": "", "T_Lane": "1", "D_Lane": "", "S_Lane": ""}, {"PID": "1", "T_Lane": "2", "D_Lane": "", "S_Lane": ""}]
        outcome = run_import(import_lanes.PROFILE, rows, mode=MODE_PREVIEW, store=store, actor=ACTOR)
        assert outcome.notices == ["Skipped row missing PID."]
        assert outcome.matched_count == 1


# ---------------------------------------------------------------------------
# Scores
# ---------------------------------------------------------------------------

class TestDetectCsvEventType:
    @pytest.mark.parametrize("game_name,expected", [
        ("2/13/ 7:00 PM  T1-Teams 1", "team"),
        ("2/14/ 9:00 AM  D2-Doubles 2", "doubles"),
        ("2/15/ 1:00 PM  S1-Singles", "singles"),
        ("Practice", None),
        ("", None),
        (None, None),
    ])
    def test_detect(self, game_name, expected):
        assert import_scores.detect_csv_event_type(game_name) == expected


def _score_row(name, game, scratch, team="Pin Pals", lane="12"):
    return {"Bowler name": name, "Team name": team, "Lane number": lane, "Game number": str(game), "Scratch": str(scratch)}


class TestScores:
    def test_pivot_per_bowler(self, make_store):
        store = make_store(_person("1", "Ann", "Lee", team="Pin Pals"), _person("2", "Bo", "Diddley", team="Pin Pals"))
        rows = [
            _score_row("Ann Lee", 1, 180),
            _score_row("Bo Diddley", 1, 150),
            _score_row("Ann Lee", 2, 201),
            _score_row("Ann Lee", 3, 199),
        ]
        outcome = run_import(import_scores.PROFILE, rows, mode=MODE_PREVIEW, store=store, actor=ACTOR, event_type="team")
        by_pid = {m.pid: dict(m.record.values) for m in outcome.matched}
        assert by_pid["1"] == {"score_team_game1": 180, "score_team_game2": 201, "score_team_game3": 199}
        assert by_pid["2"] == {"score_team_game1": 150, "score_team_game2": None, "score_team_game3": None}

    def test_nickname_match(self, make_store):
        store = make_store(_person("1", "Robert", "Jones", nickname="Bob"))
        outcome = run_import(
            import_scores.PROFILE, [_score_row("Bob Jones", 1, 190)],
            mode=MODE_PREVIEW, store=store, actor=ACTOR, event_type="singles",
        )
        assert [m.pid for m in outcome.matched] == ["1"]

    def test_invalid_game_number_notice(self, make_store):
        store = make_store(_person("1", "Ann", "Lee"))
        outcome = run_import(
            import_scores.PROFILE, [_score_row("Ann Lee", 4, 180), _score_row("Ann Lee", 1, 170)],
            mode=MODE_PREVIEW, store=store, actor=ACTOR, event_type="team",
        )
        assert outcome.notices == ['Skipped row for "Ann Lee" with invalid Game number.']

    @pytest.mark.parametrize("scratch", ["abc", "180.5"])
    def test_non_integer_scratch_dropped_with_notice(self, make_store, scratch):
        store = make_store(_person("1", "Ann", "Lee", team="Pin Pals"))
        outcome = run_import(
            import_scores.PROFILE, [_score_row("Ann Lee", 1, scratch), _score_row("Ann Lee", 2, 170)],
            mode=MODE_PREVIEW, store=store, actor=ACTOR, event_type="team",
        )
        assert outcome.notices == [f'Skipped row for "Ann Lee" with invalid Scratch value "{scratch}".']
        assert dict(outcome.matched[0].record.values) == {
            "score_team_game1": None, "score_team_game2": 170, "score_team_game3": None,
        }

    def test_blank_scratch_kept_as_no_value(self, make_store):
        store = make_store(_person("1", "Ann", "Lee", team="Pin Pals"))
        outcome = run_import(
            import_scores.PROFILE, [_score_row("Ann Lee", 1, "")],
            mode=MODE_PREVIEW, store=store, actor=ACTOR, event_type="team",
        )
        assert outcome.notices == []
        assert outcome.matched_count == 1

    def test_lane_only_namesakes_stay_apart(self, make_store):
        store = make_store(_person("1", "Ann", "Lee"), _person("2", "Ann", "Lee"))
        rows = [
            _score_row("Ann Lee", 1, 180, team="Lane 3", lane="3"),
            _score_row("Ann Lee", 1, 150, team="Lane 5", lane="5"),
        ]
        outcome = run_import(import_scores.PROFILE, rows, mode=MODE_PREVIEW, store=store, actor=ACTOR, event_type="singles")
        assert outcome.state == STATE_PREVIEW
        keys = sorted([m.record.key for m in outcome.matched] + [u.record.key for u in outcome.unmatched])
        assert keys == ["ann lee|lane 3", "ann lee|lane 5"]

    def test_bowler_group(self):
        assert import_scores.bowler_group("Pin Pals", "12") == "pin pals"
        assert import_scores.bowler_group("Lane 3", "3") == "lane 3"
        assert import_scores.bowler_group("Lane 3", None) == "lane 3"
        assert import_scores.bowler_group(None, None) == ""

    def test_advisory_warnings_do_not_block(self, make_store):
        store = make_store(_person("1", "Ann", "Lee", team="Gutter Gang", values={"lane_team": "9"}))
        outcome = run_import(
            import_scores.PROFILE, [_score_row("Ann Lee", 1, 180, team="Pin Pals", lane="12")],
            mode=MODE_COMMIT, store=store, actor=ACTOR, event_type="team",
        )
        assert outcome.state == STATE_COMMITTED
        assert {type(w) for w in outcome.warnings} == {TeamMismatch, LaneMismatch}
        assert [(e.field, e.new_value) for e in outcome.audit_entries] == [("score_team_game1", "180")]

    def test_conflicting_game_rows(self, make_store):
        store = make_store(_person("1", "Ann", "Lee"))
        outcome = run_import(
            import_scores.PROFILE, [_score_row("Ann Lee", 1, 180), _score_row("ann  lee", 1, 181)],
            mode=MODE_COMMIT, store=store, actor=ACTOR, event_type="team",
        )
        assert outcome.state == STATE_CONFLICT
        assert outcome.errors == ['Bowler "ann lee" game 1 has conflicting duplicate rows; import blocked.']


# ---------------------------------------------------------------------------
# Optional events
# ---------------------------------------------------------------------------

def _oe_row(eid, first, last, best="0", scratch="0", hdcp="0"):
    return {"EID": eid, "Last": last, "First": first, "Best 3 of 9": best, "Optional Scratch": scratch, "All Events Hdcp": hdcp}


class TestOptionalEvents:
    def test_flags_and_summary(self, make_store):
        store = make_store(_person("1", "Ann", "Lee"), _person("2", "Bo", "Diddley", values={"optional_events": 1, "optional_scratch": 1}))
        rows = [_oe_row("1", "Ann", "Lee", scratch="1"), _oe_row("2", "Bo", "Diddley", scratch="x")]
        outcome = run_import(import_optional_events.PROFILE, rows, mode=MODE_COMMIT, store=store, actor=ACTOR)
        assert store.people["1"].values["optional_scratch"] == 1
        assert store.people["1"].values["optional_events"] == 1
        assert store.people["2"].values["optional_scratch"] == 0
        assert store.people["2"].values["optional_events"] == 0
        assert outcome.updated == 2

    def test_bom_header_and_alias(self, make_store):
        store = make_store(_person("1", "Ann", "Lee"))
        row = {"\ufeffEID": "1", "Last Name": "Lee", "First Name": "Ann", "Best 3 of 9": "1", "Optional Scratch": "0", "All Events Handicapped": "0"}
        outcome = run_import(import_optional_events.PROFILE, [row], mode=MODE_PREVIEW, store=store, actor=ACTOR)
        assert outcome.matched[0].record.values["optional_best_3_of_9"] == 1

    def test_name_fallback_notice(self, make_store):
        store = make_store(_person("100", "Ann", "Lee"))
        outcome = run_import(import_optional_events.PROFILE, [_oe_row("55", "Ann", "Lee")], mode=MODE_PREVIEW, store=store, actor=ACTOR)
        assert [m.pid for m in outcome.matched] == ["100"]
        assert outcome.notices == ['Matched "Ann Lee" by name because ID "55" was not found.']

    def test_ambiguous_fallback_unmatched(self, make_store):
        store = make_store(_person("100", "Ann", "Lee"), _person("101", "Ann", "Lee"))
        outcome = run_import(import_optional_events.PROFILE, [_oe_row("55", "Ann", "Lee")], mode=MODE_PREVIEW, store=store, actor=ACTOR)
        assert outcome.matched == []
        assert outcome.notices == []

    def test_missing_values_notice(self, make_store):
        store = make_store(_person("1", "Ann", "Lee"))
        outcome = run_import(import_optional_events.PROFILE, [_oe_row("", "Ann", "Lee")], mode=MODE_PREVIEW, store=store, actor=ACTOR)
        assert outcome.notices == ["Skipped row missing EID/Last/First values."]

    def test_conflicting_flags(self, make_store):
        store = make_store(_person("1", "Ann", "Lee"))
        rows = [_oe_row("1", "Ann", "Lee", best="1"), _oe_row("1", "Ann", "Lee", best="0")]
        outcome = run_import(import_optional_events.PROFILE, rows, mode=MODE_COMMIT, store=store, actor=ACTOR)
        assert outcome.errors == ['EID "1" has conflicting duplicate rows; import blocked.']


# ---------------------------------------------------------------------------
# Scratch Masters
# ---------------------------------------------------------------------------

class TestScratchMasters:
    def test_nickname_preferred(self, make_store):
        store = make_store(_person("1", "Bob", "Jones"), _person("2", "Robert", "Jones", nickname="Bob"))
        outcome = run_import(
            import_scratch_masters.PROFILE, [{"Bowler Name": "Bob Jones", "SM?": "1"}],
            mode=MODE_COMMIT, store=store, actor=ACTOR,
        )
        assert [m.pid for m in outcome.matched] == ["2"]
        assert store.people["2"].values["scratch_masters"] == 1

    def test_invalid_flag_rejects_file(self, make_store):
        store = make_store(_person("1", "Ann", "Lee"))
        rows = [{"Bowler Name": "Ann Lee", "SM?": "yes"}]
        outcome = run_import(import_scratch_masters.PROFILE, rows, mode=MODE_PREVIEW, store=store, actor=ACTOR)
        assert outcome.state == STATE_CONFLICT
        assert outcome.errors == ['Row for "Ann Lee" has invalid SM? value; expected 0 or 1.']

    def test_alias_and_empty_name(self, make_store):
        store = make_store(_person("1", "Ann", "Lee"))
        rows = [{"Bowler name": "", "Scratch Masters": "1"}, {"Bowler name": "Ann Lee", "Scratch Masters": "0"}]
        outcome = run_import(import_scratch_masters.PROFILE, rows, mode=MODE_PREVIEW, store=store, actor=ACTOR)
        assert outcome.notices == ["Skipped row with empty Bowler Name."]
        assert outcome.matched_count == 1


# ---------------------------------------------------------------------------
# Participants
# ---------------------------------------------------------------------------

class TestParticipants:
    def test_average_and_handicap(self, make_store):
        store = make_store(_person("1", "Ann", "Lee", values={"email": "ann@old.org"}))
        rows = [{"PID": "1", "Email": " Ann@New.org ", "Average": "180", "City": ""}]
        outcome = run_import(import_participants.PROFILE, rows, mode=MODE_COMMIT, store=store, actor=ACTOR)
        assert [(e.field, e.old_value, e.new_value) for e in outcome.audit_entries] == [
            ("email", "ann@old.org", "ann@new.org"),
            ("avg_entering", None, "180"),
            ("avg_handicap", None, "40"),
        ]

    def test_fractional_average(self, make_store):
        store = make_store(_person("1", "Ann", "Lee"))
        outcome = run_import(import_participants.PROFILE, [{"PID": "1", "Average": "150.5"}], mode=MODE_COMMIT, store=store, actor=ACTOR)
        assert store.people["1"].values["avg_entering"] == Decimal("150.5")
        assert store.people["1"].values["avg_handicap"] == 67
        assert outcome.updated == 1

    @pytest.mark.parametrize("raw,expected", [
        ("180.555", Decimal("180.56")),
        ("180.554", Decimal("180.55")),
        ("180", Decimal("180.00")),
        ("", None),
        ("n/a", None),
    ])
    def test_parse_average_stored_precision(self, raw, expected):
        assert import_participants.parse_average(raw) == expected

    def test_average_rounded_before_diff(self, make_store):
        store = make_store(_person("1", "Ann", "Lee", values={"avg_entering": Decimal("180.56"), "avg_handicap": 39}))
        outcome = run_import(import_participants.PROFILE, [{"PID": "1", "Average": "180.555"}], mode=MODE_COMMIT, store=store, actor=ACTOR)
        assert outcome.updated == 0
        assert outcome.audit_entries == []

    def test_missing_columns_do_not_clobber(self, make_store):
        store = make_store(_person("1", "Ann", "Lee", values={"email": "ann@x.org", "phone": "555"}))
        outcome = run_import(import_participants.PROFILE, [{"PID": "1"}], mode=MODE_COMMIT, store=store, actor=ACTOR)
        assert outcome.updated == 0
        assert outcome.skipped == 1
