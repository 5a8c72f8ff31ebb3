"""Tests for position and status derivation."""

from __future__ import annotations

from services.timing import standings
from shared.schemas.race import QualifyingResult, RaceResult, SessionStatus


def quali(driver_id: str, best_lap: str = "") -> QualifyingResult:
    return QualifyingResult(driver_id=driver_id, best_lap=best_lap)


def race(driver_id: str, gap: str = "") -> RaceResult:
    return RaceResult(driver_id=driver_id, gap=gap)


class TestQualifyingPositions:
    def test_ranked_by_best_lap(self):
        positions = standings.qualifying_positions(
            [quali("a", "43.100"), quali("b", "00:42.900"), quali("c", "0043500")]
        )
        assert positions == {"b": 1, "a": 2, "c": 3}

    def test_drivers_without_time_are_unranked(self):
        positions = standings.qualifying_positions([quali("a", "42.350"), quali("b")])
        assert positions == {"a": 1, "b": None}

    def test_unparseable_time_is_unranked(self):
        positions = standings.qualifying_positions([quali("a", "DNF"), quali("b", "41.000")])
        assert positions == {"a": None, "b": 1}

    def test_normalize_canonicalizes_times(self):
        rows = standings.normalize_qualifying([quali("a", "42.35"), quali("b")])
        assert [(row.driver_id, row.best_lap, row.position) for row in rows] == [
            ("a", "00:42.350", 1),
            ("b", "", None),
        ]

    def test_stale_positions_are_overwritten(self):
        rows = standings.normalize_qualifying([QualifyingResult(driver_id="a", position=4)])
        assert rows[0].position is None


class TestRacePositions:
    def test_card_order_is_the_ranking(self):
        rows = standings.normalize_race([race("c", "--"), race("a", "+0.5"), race("b", "1.2")])
        assert {row.driver_id: row.position for row in rows} == {"c": 1, "a": 2, "b": 3}
        assert [row.gap for row in rows] == ["--", "+0.5", "+1.2"]

    def test_leader_gap_is_forced_to_sentinel(self):
        rows = standings.normalize_race([race("c", "+3.0"), race("a", "0.5")])
        assert rows[0].gap == "--"


class TestStatus:
    def test_qualifying_partial(self):
        rows = standings.normalize_qualifying([quali("a", "42.350"), quali("b")])
        assert standings.qualifying_status(rows, ["a", "b"]) == SessionStatus.IN_PROGRESS

    def test_qualifying_complete(self):
        rows = standings.normalize_qualifying([quali("a", "42.350"), quali("b", "43.000")])
        assert standings.qualifying_status(rows, ["a", "b"]) == SessionStatus.COMPLETED

    def test_qualifying_untimed(self):
        rows = standings.normalize_qualifying([quali("a"), quali("b")])
        assert standings.qualifying_status(rows, ["a", "b"]) == SessionStatus.NOT_STARTED

    def test_qualifying_missing_driver_is_not_complete(self):
        rows = standings.normalize_qualifying([quali("a", "42.350")])
        assert standings.qualifying_status(rows, ["a", "b"]) == SessionStatus.IN_PROGRESS

    def test_race_complete_when_every_chaser_has_a_gap(self):
        rows = standings.normalize_race([race("c"), race("a", "0.5"), race("b", "1.2")])
        assert standings.race_status(rows, ["a", "b", "c"]) == SessionStatus.COMPLETED

    def test_race_in_progress(self):
        rows = standings.normalize_race([race("c"), race("a", "0.5"), race("b")])
        assert standings.race_status(rows, ["a", "b", "c"]) == SessionStatus.IN_PROGRESS

    def test_race_without_gaps(self):
        rows = standings.normalize_race([race("c"), race("a")])
        assert standings.race_status(rows, ["a", "c"]) == SessionStatus.NOT_STARTED

    def test_race_without_results(self):
        assert standings.race_status([], ["a"]) == SessionStatus.NOT_STARTED
