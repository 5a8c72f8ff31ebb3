"""Ordered schema upgrades for databases written by older releases.

Each step inspects the live schema and only acts when its change is missing,
so running the whole list on an up-to-date database does nothing. Steps run
before ``create_all``: a missing table is left for ``create_all`` to build in
its current shape, only pre-existing tables are upgraded here.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Callable, List, Set

from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection

from shared.schemas.race import (
    DEFAULT_CLASSES,
    DEFAULT_TAB_LABELS,
    LEGACY_CLASSES,
    LEGACY_TAB_LABELS,
    SessionCategory,
)
from shared.utils.logging import configure_logging

from .models import new_id

logger = configure_logging("timing.migrations")

FALLBACK_ROUND_NAME = "Round 2"
AD_HOC_DRIVER_PREFIX = "added-"


@dataclass(frozen=True)
class Migration:
    name: str
    apply: Callable[[Connection], bool]


def _has_table(conn: Connection, table: str) -> bool:
    return inspect(conn).has_table(table)


def _columns(conn: Connection, table: str) -> Set[str]:
    return {column["name"] for column in inspect(conn).get_columns(table)}


def _classes_json(classes) -> str:
    return json.dumps([race_class.value for race_class in classes])


def _insert_fallback_round(conn: Connection) -> str:
    round_id = new_id("round")
    columns = _columns(conn, "rounds")
    values = {"id": round_id, "name": FALLBACK_ROUND_NAME, "sort_order": 0}
    if "tab1_label" in columns:
        values.update(
            tab1_label=LEGACY_TAB_LABELS[0],
            tab2_label=LEGACY_TAB_LABELS[1],
            tab3_label=LEGACY_TAB_LABELS[2],
        )
    if "classes" in columns:
        values["classes"] = _classes_json(LEGACY_CLASSES)
    names = ", ".join(values)
    params = ", ".join(f":{key}" for key in values)
    conn.execute(text(f"INSERT INTO rounds ({names}) VALUES ({params})"), values)
    return round_id


def ensure_session_round_owner(conn: Connection) -> bool:
    if not _has_table(conn, "sessions"):
        return False

    changed = False
    if not _has_table(conn, "rounds"):
        conn.execute(
            text(
                "CREATE TABLE rounds ("
                "id VARCHAR(64) NOT NULL PRIMARY KEY, "
                "name TEXT NOT NULL, "
                "sort_order INTEGER NOT NULL DEFAULT 0, "
                "created_at DATETIME DEFAULT CURRENT_TIMESTAMP)"
            )
        )
        changed = True

    if "round_id" not in _columns(conn, "sessions"):
        conn.execute(
            text(
                "ALTER TABLE sessions ADD COLUMN round_id VARCHAR(64) "
                "REFERENCES rounds(id) ON DELETE CASCADE"
            )
        )
        changed = True

    orphans = conn.execute(text("SELECT COUNT(*) FROM sessions WHERE round_id IS NULL")).scalar_one()
    if orphans:
        round_id = _insert_fallback_round(conn)
        conn.execute(
            text("UPDATE sessions SET round_id = :round_id WHERE round_id IS NULL"),
            {"round_id": round_id},
        )
        logger.info("Assegnate %s sessioni orfane a '%s' (%s)", orphans, FALLBACK_ROUND_NAME, round_id)
        changed = True
    return changed


def ensure_round_presentation(conn: Connection) -> bool:
    if not _has_table(conn, "rounds"):
        return False

    columns = _columns(conn, "rounds")
    wanted = {
        "tab1_label": DEFAULT_TAB_LABELS[0],
        "tab2_label": DEFAULT_TAB_LABELS[1],
        "tab3_label": DEFAULT_TAB_LABELS[2],
    }
    missing_labels = [name for name in wanted if name not in columns]
    missing_classes = "classes" not in columns
    if not missing_labels and not missing_classes:
        return False

    # rounds already present predate per-round labels: they keep the legacy scheme
    existing_ids = [row[0] for row in conn.execute(text("SELECT id FROM rounds"))]

    for name in missing_labels:
        default = wanted[name].replace("'", "''")
        conn.execute(text(f"ALTER TABLE rounds ADD COLUMN {name} TEXT NOT NULL DEFAULT '{default}'"))
    if missing_classes:
        conn.execute(
            text(
                "ALTER TABLE rounds ADD COLUMN classes TEXT NOT NULL "
                f"DEFAULT '{_classes_json(DEFAULT_CLASSES)}'"
            )
        )

    for round_id in existing_ids:
        if missing_labels:
            conn.execute(
                text("UPDATE rounds SET tab2_label = :tab2, tab3_label = :tab3 WHERE id = :id"),
                {"tab2": LEGACY_TAB_LABELS[1], "tab3": LEGACY_TAB_LABELS[2], "id": round_id},
            )
        if missing_classes:
            conn.execute(
                text("UPDATE rounds SET classes = :classes WHERE id = :id"),
                {"classes": _classes_json(LEGACY_CLASSES), "id": round_id},
            )
    return True


def ensure_result_lap_counts(conn: Connection) -> bool:
    if not _has_table(conn, "results"):
        return False

    columns = _columns(conn, "results")
    changed = False
    for name in ("lap_count", "team_lap_count"):
        if name not in columns:
            conn.execute(text(f"ALTER TABLE results ADD COLUMN {name} INTEGER NOT NULL DEFAULT 0"))
            changed = True
    return changed


def ensure_session_endurance(conn: Connection) -> bool:
    if not _has_table(conn, "sessions"):
        return False
    if "is_endurance" in _columns(conn, "sessions"):
        return False

    conn.execute(text("ALTER TABLE sessions ADD COLUMN is_endurance BOOLEAN NOT NULL DEFAULT 0"))
    conn.execute(
        text("UPDATE sessions SET is_endurance = 1 WHERE category = :category"),
        {"category": SessionCategory.FINAL_AND_RACE_2.value},
    )
    return True


def ensure_driver_team_flag(conn: Connection) -> bool:
    if not _has_table(conn, "drivers"):
        return False
    if "is_team" in _columns(conn, "drivers"):
        return False

    conn.execute(text("ALTER TABLE drivers ADD COLUMN is_team BOOLEAN NOT NULL DEFAULT 0"))
    # roster drivers were seeded with name-based ids, ad hoc ones with the "added-" prefix
    conn.execute(
        text("UPDATE drivers SET is_team = 1 WHERE id NOT LIKE :prefix"),
        {"prefix": f"{AD_HOC_DRIVER_PREFIX}%"},
    )
    return True


MIGRATIONS: List[Migration] = [
    Migration("session_round_owner", ensure_session_round_owner),
    Migration("round_presentation", ensure_round_presentation),
    Migration("result_lap_counts", ensure_result_lap_counts),
    Migration("session_endurance", ensure_session_endurance),
    Migration("driver_team_flag", ensure_driver_team_flag),
]


def run_migrations(conn: Connection) -> List[str]:
    applied: List[str] = []
    for migration in MIGRATIONS:
        if migration.apply(conn):
            applied.append(migration.name)
            logger.info("Migrazione applicata: %s", migration.name)
    if not applied:
        logger.debug("Schema gia aggiornato")
    return applied
