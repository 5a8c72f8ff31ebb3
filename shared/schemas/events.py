from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .race import (
    QualifyingResult,
    RaceClass,
    RaceResult,
    SessionCategory,
    SessionKind,
    SessionStatus,
    TabLabels,
    WireModel,
)


class ClientEvent(str, Enum):
    ROUND_LIST = "round:list"
    ROUND_ADD = "round:add"
    ROUND_UPDATE = "round:update"
    ROUND_DELETE = "round:delete"
    DATA_REQUEST_FULL = "data:requestFull"
    RACE_SAVE = "race:save"
    QUALIFYING_SAVE = "qualifying:save"
    DRIVER_ADD = "driver:add"
    DRIVER_REMOVE = "driver:remove"
    SESSION_ADD = "session:add"
    SESSION_UPDATE_LABEL = "session:updateLabel"
    SESSION_UPDATE_CLASS = "session:updateClass"
    SESSION_UPDATE_ENDURANCE = "session:updateEndurance"


class ServerEvent(str, Enum):
    CONNECTION_COUNT = "connection:count"
    ROUND_LIST_RESULT = "round:listResult"
    FULL_STATE = "data:fullState"
    RACE_SAVED = "race:saved"
    QUALIFYING_SAVED = "qualifying:saved"
    DRIVER_ADDED = "driver:added"
    DRIVER_REMOVED = "driver:removed"
    SESSION_LABEL_UPDATED = "session:labelUpdated"
    ERROR = "error"


class Envelope(BaseModel):
    """One frame on the socket, in either direction."""

    event: str = Field(..., min_length=1)
    data: Optional[Any] = None

    @classmethod
    def of(cls, event: ServerEvent, data: Any) -> Dict[str, Any]:
        return {"event": event.value, "data": data}


# --- client -> server payloads ---


class RoundAddPayload(WireModel):
    name: str = Field(..., min_length=1)
    tab_labels: Optional[TabLabels] = None
    classes: Optional[List[RaceClass]] = None
    seed: bool = False


class RoundUpdatePayload(WireModel):
    round_id: str
    name: Optional[str] = Field(None, min_length=1)
    tab_labels: Optional[TabLabels] = None
    classes: Optional[List[RaceClass]] = None


class RoundDeletePayload(WireModel):
    round_id: str


class FullStateRequest(WireModel):
    round_id: Optional[str] = None


class RaceSavePayload(WireModel):
    race_id: str
    results: List[RaceResult]
    status: Optional[SessionStatus] = None


class QualifyingSavePayload(WireModel):
    race_id: str
    results: List[QualifyingResult]
    status: Optional[SessionStatus] = None


class DriverAddPayload(WireModel):
    race_id: str
    name: str = Field(..., min_length=1)


class DriverRemovePayload(WireModel):
    race_id: str
    driver_id: str


class SessionAddPayload(WireModel):
    category: SessionCategory
    type: SessionKind
    race_class: RaceClass
    label: str = Field(..., min_length=1)
    round_id: Optional[str] = None


class SessionUpdateLabelPayload(WireModel):
    race_id: str
    label: str = Field(..., min_length=1)


class SessionUpdateClassPayload(WireModel):
    race_id: str
    race_class: RaceClass


class SessionUpdateEndurancePayload(WireModel):
    race_id: str
    is_endurance: bool


# --- server -> client payloads ---


class ErrorPayload(WireModel):
    event: str
    kind: str
    message: str
