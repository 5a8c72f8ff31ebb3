from __future__ import annotations

from enum import Enum
from typing import List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RaceClass(str, Enum):
    WOMEN = "women"
    JUNIOR = "junior"
    PRO_AM = "pro-am"
    PRO = "pro"


class SessionKind(str, Enum):
    QUALIFYING = "qualifying"
    HEAT = "heat"
    RACE = "race"
    FINAL = "final"


class SessionStatus(str, Enum):
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class SessionCategory(str, Enum):
    QUALIFYING = "qualifying"
    HEATS_AND_RACE_1 = "heatsAndRace1"
    FINAL_AND_RACE_2 = "finalAndRace2"


TabLabels = Tuple[str, str, str]

DEFAULT_TAB_LABELS: TabLabels = ("Qualifying", "Super Sprint", "Endurance")
DEFAULT_CLASSES: Tuple[RaceClass, ...] = (RaceClass.JUNIOR, RaceClass.PRO)

# Scheme of the rounds that existed before tab labels/classes became per-round.
LEGACY_TAB_LABELS: TabLabels = ("Qualifying", "Heats & Race 1", "Final & Race 2")
LEGACY_CLASSES: Tuple[RaceClass, ...] = (
    RaceClass.WOMEN,
    RaceClass.JUNIOR,
    RaceClass.PRO_AM,
    RaceClass.PRO,
)


def is_endurance_category(category: SessionCategory) -> bool:
    return category == SessionCategory.FINAL_AND_RACE_2


class WireModel(BaseModel):
    """Base for everything that travels over the socket (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Round(WireModel):
    id: str
    name: str
    tab_labels: TabLabels = DEFAULT_TAB_LABELS
    classes: List[RaceClass] = Field(default_factory=lambda: list(DEFAULT_CLASSES))


class Driver(WireModel):
    id: str
    name: str
    is_team: bool = False


class QualifyingResult(WireModel):
    driver_id: str
    driver_name: str = ""
    position: Optional[int] = Field(None, ge=1)
    best_lap: str = ""


class RaceResult(WireModel):
    driver_id: str
    driver_name: str = ""
    position: Optional[int] = Field(None, ge=1)
    best_lap: str = ""
    total_time: str = ""
    gap: str = "--"
    lap_count: int = Field(0, ge=0)
    team_lap_count: int = Field(0, ge=0)


class QualifyingSession(WireModel):
    id: str
    type: Literal["qualifying"] = "qualifying"
    race_class: RaceClass
    label: str
    status: SessionStatus = SessionStatus.NOT_STARTED
    round_id: Optional[str] = None
    drivers: List[Driver] = Field(default_factory=list)
    results: List[QualifyingResult] = Field(default_factory=list)


class RaceSession(WireModel):
    id: str
    type: Literal["heat", "race", "final"]
    race_class: RaceClass
    label: str
    status: SessionStatus = SessionStatus.NOT_STARTED
    round_id: Optional[str] = None
    is_endurance: bool = False
    drivers: List[Driver] = Field(default_factory=list)
    results: List[RaceResult] = Field(default_factory=list)



class FullState(WireModel):
    round_id: Optional[str] = None
    qualifying: List[QualifyingSession] = Field(default_factory=list)
    heats_and_race_1: List[RaceSession] = Field(default_factory=list, alias="heatsAndRace1")
    final_and_race_2: List[RaceSession] = Field(default_factory=list, alias="finalAndRace2")

    def sessions(self) -> List[Union[QualifyingSession, RaceSession]]:
        return [*self.qualifying, *self.heats_and_race_1, *self.final_and_race_2]


class SavedResults(WireModel):
    """Outcome of a result-set replace, exactly as written to the store."""

    race_id: str
    kind: SessionKind
    results: List[Union[QualifyingResult, RaceResult]]
    status: SessionStatus
