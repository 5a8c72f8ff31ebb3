"""Positions and session status, derived from the entered results.

Qualifying is ranked by best lap (drivers without a valid time stay unranked).
Races are ranked by card order: the order the operator arranged the results in.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence

from shared.schemas.race import QualifyingResult, RaceResult, SessionStatus
from shared.utils.time_format import NO_GAP, format_gap, format_time, has_gap, time_to_ms


def qualifying_positions(results: Sequence[QualifyingResult]) -> Dict[str, Optional[int]]:
    positions: Dict[str, Optional[int]] = {result.driver_id: None for result in results}
    timed = [
        (time_to_ms(format_time(result.best_lap)), index, result.driver_id)
        for index, result in enumerate(results)
    ]
    ranked = sorted((entry for entry in timed if entry[0] > 0), key=lambda entry: (entry[0], entry[1]))
    for rank, (_, _, driver_id) in enumerate(ranked, start=1):
        positions[driver_id] = rank
    return positions


def race_positions(results: Sequence[RaceResult]) -> Dict[str, Optional[int]]:
    return {result.driver_id: index for index, result in enumerate(results, start=1)}


def normalize_qualifying(results: Sequence[QualifyingResult]) -> List[QualifyingResult]:
    positions = qualifying_positions(results)
    return [
        result.model_copy(
            update={
                "best_lap": format_time(result.best_lap),
                "position": positions[result.driver_id],
            }
        )
        for result in results
    ]


def normalize_race(results: Sequence[RaceResult]) -> List[RaceResult]:
    positions = race_positions(results)
    normalized: List[RaceResult] = []
    for index, result in enumerate(results):
        normalized.append(
            result.model_copy(
                update={
                    "best_lap": format_time(result.best_lap),
                    "total_time": format_time(result.total_time),
                    # the leader never carries a gap
                    "gap": NO_GAP if index == 0 else format_gap(result.gap),
                    "position": positions[result.driver_id],
                }
            )
        )
    return normalized


def _status(entered: int, expected: int) -> SessionStatus:
    if expected and entered >= expected:
        return SessionStatus.COMPLETED
    if entered:
        return SessionStatus.IN_PROGRESS
    return SessionStatus.NOT_STARTED


def qualifying_status(results: Sequence[QualifyingResult], driver_ids: Iterable[str]) -> SessionStatus:
    roster = set(driver_ids)
    timed = {result.driver_id for result in results if result.best_lap and result.driver_id in roster}
    return _status(len(timed), len(roster))


def race_status(results: Sequence[RaceResult], driver_ids: Iterable[str]) -> SessionStatus:
    roster = set(driver_ids)
    if not results:
        return SessionStatus.NOT_STARTED

    chasers = results[1:]
    gapped = sum(1 for result in chasers if has_gap(result.gap))
    covers_roster = roster.issubset({result.driver_id for result in results})
    if covers_roster and gapped == len(chasers):
        return SessionStatus.COMPLETED
    if gapped:
        return SessionStatus.IN_PROGRESS
    return SessionStatus.NOT_STARTED
