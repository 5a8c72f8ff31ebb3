"""Client-side copy of the race data, rebuilt from server events.

Nothing here is authoritative: on reconnect call ``reset()`` and request a
full state again.
"""

from __future__ import annotations

import copy
from typing import Any, Callable, Dict, Iterator, List, Optional

BUCKETS = ("qualifying", "heatsAndRace1", "finalAndRace2")


class RaceMirror:
    def __init__(self, round_id: Optional[str] = None) -> None:
        self.round_id = round_id
        self.state: Optional[Dict[str, Any]] = None
        self.rounds: List[Dict[str, Any]] = []
        self.connection_count = 0
        self._reducers: Dict[str, Callable[[Any], None]] = {
            "data:fullState": self._full_state,
            "race:saved": self._results_saved,
            "qualifying:saved": self._results_saved,
            "driver:added": self._driver_added,
            "driver:removed": self._driver_removed,
            "session:labelUpdated": self._label_updated,
            "round:listResult": self._round_list,
            "connection:count": self._connection_count,
        }

    def reset(self) -> None:
        self.state = None
        self.rounds = []
        self.connection_count = 0

    def apply(self, event: str, data: Any) -> bool:
        reducer = self._reducers.get(event)
        if reducer is None:
            return False
        reducer(data)
        return True

    def apply_envelope(self, message: Dict[str, Any]) -> bool:
        return self.apply(message.get("event", ""), message.get("data"))

    def sessions(self) -> Iterator[Dict[str, Any]]:
        if self.state is None:
            return
        for bucket in BUCKETS:
            yield from self.state.get(bucket, [])

    def session(self, session_id: str) -> Optional[Dict[str, Any]]:
        for item in self.sessions():
            if item["id"] == session_id:
                return item
        return None

    # --- reducers ---

    def _full_state(self, data: Dict[str, Any]) -> None:
        target = data.get("roundId")
        if self.round_id is not None and target is not None and target != self.round_id:
            return
        self.state = copy.deepcopy(data)

    def _results_saved(self, data: Dict[str, Any]) -> None:
        item = self.session(data["raceId"])
        if item is None:
            return
        item["results"] = copy.deepcopy(data["results"])
        item["status"] = data["status"]

    def _driver_added(self, data: Dict[str, Any]) -> None:
        item = self.session(data["raceId"])
        if item is None:
            return
        driver = data["driver"]
        if all(existing["id"] != driver["id"] for existing in item["drivers"]):
            item["drivers"].append(dict(driver))

    def _driver_removed(self, data: Dict[str, Any]) -> None:
        item = self.session(data["raceId"])
        if item is None:
            return
        driver_id = data["driverId"]
        item["drivers"] = [driver for driver in item["drivers"] if driver["id"] != driver_id]
        item["results"] = [result for result in item["results"] if result["driverId"] != driver_id]

    def _label_updated(self, data: Dict[str, Any]) -> None:
        item = self.session(data["raceId"])
        if item is not None:
            item["label"] = data["label"]

    def _round_list(self, data: List[Dict[str, Any]]) -> None:
        self.rounds = copy.deepcopy(data)

    def _connection_count(self, data: Dict[str, Any]) -> None:
        self.connection_count = int(data["count"])
