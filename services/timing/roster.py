from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Tuple

from shared.schemas.race import RaceClass, SessionCategory, SessionKind

CLASS_LABELS: Dict[RaceClass, str] = {
    RaceClass.WOMEN: "Women",
    RaceClass.JUNIOR: "Junior",
    RaceClass.PRO_AM: "Pro-Am",
    RaceClass.PRO: "Pro",
}

TEAM_DRIVERS: Dict[RaceClass, Tuple[str, ...]] = {
    RaceClass.WOMEN: ("Anggia",),
    RaceClass.JUNIOR: ("Rayden",),
    RaceClass.PRO_AM: ("Temmy", "Edmund"),
    RaceClass.PRO: ("Demas", "Raphael"),
}


@dataclass(frozen=True)
class SessionTemplate:
    category: SessionCategory
    kind: SessionKind
    race_class: RaceClass
    label: str


def round_layout(classes: List[RaceClass]) -> List[SessionTemplate]:
    """Default sessions of a round: one per category for every class in scope."""
    layout: List[SessionTemplate] = []
    for race_class in classes:
        name = CLASS_LABELS[race_class]
        layout.append(
            SessionTemplate(
                SessionCategory.QUALIFYING, SessionKind.QUALIFYING, race_class, f"Qualifying - {name}"
            )
        )
    for race_class in classes:
        name = CLASS_LABELS[race_class]
        kind = SessionKind.HEAT if race_class == RaceClass.PRO else SessionKind.RACE
        label = f"{name} Heat 1" if kind == SessionKind.HEAT else f"Race 1 {name}"
        layout.append(SessionTemplate(SessionCategory.HEATS_AND_RACE_1, kind, race_class, label))
    for race_class in classes:
        name = CLASS_LABELS[race_class]
        kind = SessionKind.FINAL if race_class == RaceClass.PRO else SessionKind.RACE
        label = f"Final {name}" if kind == SessionKind.FINAL else f"Race 2 {name}"
        layout.append(SessionTemplate(SessionCategory.FINAL_AND_RACE_2, kind, race_class, label))
    return layout


def team_slug(name: str) -> str:
    return "-".join(name.lower().split())
