from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from shared.schemas import race
from shared.utils.logging import configure_logging

from . import models, standings
from .database import Database
from .errors import NotFoundError, PayloadValidationError, StorageError
from .repository import RaceRepository
from .roster import TEAM_DRIVERS, round_layout, team_slug

logger = configure_logging("timing.store")


def _round_view(record: models.Round) -> race.Round:
    return race.Round(
        id=record.id,
        name=record.name,
        tab_labels=(record.tab1_label, record.tab2_label, record.tab3_label),
        classes=list(record.classes or []),
    )


def _driver_view(record: models.Driver) -> race.Driver:
    return race.Driver(id=record.id, name=record.name, is_team=bool(record.is_team))


def _qualifying_view(record: models.Result) -> race.QualifyingResult:
    return race.QualifyingResult(
        driver_id=record.driver_id,
        driver_name=record.driver_name,
        position=record.position,
        best_lap=record.best_lap or "",
    )


def _race_view(record: models.Result) -> race.RaceResult:
    return race.RaceResult(
        driver_id=record.driver_id,
        driver_name=record.driver_name,
        position=record.position,
        best_lap=record.best_lap or "",
        total_time=record.total_time or "",
        gap=record.gap or "--",
        lap_count=record.lap_count or 0,
        team_lap_count=record.team_lap_count or 0,
    )


class RaceStore:
    """Sole writer of race data. Every operation runs in its own transaction."""

    def __init__(self, database: Database) -> None:
        self.database = database

    @classmethod
    def from_url(cls, url: str) -> "RaceStore":
        return cls(Database(url))

    async def init(self) -> None:
        await self.database.init()

    async def close(self) -> None:
        await self.database.close()

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[RaceRepository]:
        async with self.database.get_session() as session:
            try:
                async with session.begin():
                    yield RaceRepository(session)
            except SQLAlchemyError as exc:
                logger.exception("Transazione annullata")
                raise StorageError(f"Errore di scrittura: {exc.__class__.__name__}") from exc

    async def _require_round(self, repo: RaceRepository, round_id: str) -> models.Round:
        record = await repo.get_round(round_id)
        if record is None:
            raise NotFoundError("Round", round_id)
        return record

    async def _require_session(self, repo: RaceRepository, session_id: str) -> models.Session:
        record = await repo.get_session(session_id)
        if record is None:
            raise NotFoundError("Sessione", session_id)
        return record

    # --- rounds ---

    async def list_rounds(self) -> List[race.Round]:
        async with self._transaction() as repo:
            return [_round_view(record) for record in await repo.list_rounds()]

    async def create_round(
        self,
        name: str,
        tab_labels: Optional[race.TabLabels] = None,
        classes: Optional[Sequence[race.RaceClass]] = None,
        seed: bool = False,
    ) -> race.Round:
        labels = tuple(tab_labels) if tab_labels else race.DEFAULT_TAB_LABELS
        scope = [race.RaceClass(value) for value in (classes if classes is not None else race.DEFAULT_CLASSES)]
        async with self._transaction() as repo:
            record = await repo.add_round(name, labels, [value.value for value in scope])
            if seed:
                await self._seed(repo, record.id, scope)
            return _round_view(record)

    async def update_round(
        self,
        round_id: str,
        name: Optional[str] = None,
        tab_labels: Optional[race.TabLabels] = None,
        classes: Optional[Sequence[race.RaceClass]] = None,
    ) -> None:
        async with self._transaction() as repo:
            record = await self._require_round(repo, round_id)
            if name is not None:
                record.name = name
            if tab_labels is not None:
                record.tab1_label, record.tab2_label, record.tab3_label = tab_labels
            if classes is not None:
                record.classes = [race.RaceClass(value).value for value in classes]

    async def delete_round(self, round_id: str) -> None:
        async with self._transaction() as repo:
            await self._require_round(repo, round_id)
            await repo.delete_round(round_id)
        logger.info("Round %s eliminato", round_id)

    async def seed_round(self, round_id: str) -> int:
        async with self._transaction() as repo:
            record = await self._require_round(repo, round_id)
            scope = [race.RaceClass(value) for value in record.classes or []]
            return await self._seed(repo, round_id, scope)

    async def _seed(self, repo: RaceRepository, round_id: str, scope: List[race.RaceClass]) -> int:
        layout = round_layout(scope)
        for template in layout:
            session = await repo.add_session(
                template.category.value,
                template.kind.value,
                template.race_class.value,
                template.label,
                round_id,
                race.is_endurance_category(template.category),
            )
            for name in TEAM_DRIVERS.get(template.race_class, ()):
                await repo.add_driver(session.id, name, is_team=True, slug=team_slug(name))
        return len(layout)

    # --- state ---

    async def get_full_state(self, round_id: Optional[str] = None) -> race.FullState:
        async with self._transaction() as repo:
            sessions = await repo.list_sessions(round_id)
            ids = [session.id for session in sessions]
            drivers = await repo.list_drivers(ids)
            results = await repo.list_results(ids)

        state = race.FullState(round_id=round_id)
        for session in sessions:
            roster = [_driver_view(driver) for driver in drivers[session.id]]
            if session.type == race.SessionKind.QUALIFYING.value:
                state.qualifying.append(
                    race.QualifyingSession(
                        id=session.id,
                        race_class=session.race_class,
                        label=session.label,
                        status=session.status,
                        round_id=session.round_id,
                        drivers=roster,
                        results=[_qualifying_view(row) for row in results[session.id]],
                    )
                )
                continue

            view = race.RaceSession(
                id=session.id,
                type=session.type,
                race_class=session.race_class,
                label=session.label,
                status=session.status,
                round_id=session.round_id,
                is_endurance=bool(session.is_endurance),
                drivers=roster,
                results=[_race_view(row) for row in results[session.id]],
            )
            if session.category == race.SessionCategory.HEATS_AND_RACE_1.value:
                state.heats_and_race_1.append(view)
            else:
                state.final_and_race_2.append(view)
        return state

    # --- sessions ---

    async def create_session(
        self,
        category: race.SessionCategory,
        kind: race.SessionKind,
        race_class: race.RaceClass,
        label: str,
        round_id: Optional[str] = None,
    ) -> str:
        category = race.SessionCategory(category)
        kind = race.SessionKind(kind)
        if round_id is None:
            raise PayloadValidationError("roundId richiesto per creare una sessione")
        is_qualifying_bucket = category == race.SessionCategory.QUALIFYING
        if is_qualifying_bucket != (kind == race.SessionKind.QUALIFYING):
            raise PayloadValidationError(f"Tipo {kind.value} non ammesso nella categoria {category.value}")

        async with self._transaction() as repo:
            await self._require_round(repo, round_id)
            record = await repo.add_session(
                category.value,
                kind.value,
                race.RaceClass(race_class).value,
                label,
                round_id,
                race.is_endurance_category(category),
            )
            return record.id

    async def get_round_id_for_session(self, session_id: str) -> Optional[str]:
        async with self._transaction() as repo:
            record = await repo.get_session(session_id)
            return record.round_id if record else None

    async def update_session_label(self, session_id: str, label: str) -> None:
        async with self._transaction() as repo:
            record = await self._require_session(repo, session_id)
            record.label = label

    async def update_session_class(self, session_id: str, race_class: race.RaceClass) -> None:
        async with self._transaction() as repo:
            record = await self._require_session(repo, session_id)
            record.race_class = race.RaceClass(race_class).value

    async def set_session_endurance(self, session_id: str, is_endurance: bool) -> None:
        async with self._transaction() as repo:
            record = await self._require_session(repo, session_id)
            record.is_endurance = is_endurance

    # --- drivers ---

    async def add_driver(self, session_id: str, name: str) -> race.Driver:
        async with self._transaction() as repo:
            await self._require_session(repo, session_id)
            record = await repo.add_driver(session_id, name)
            return _driver_view(record)

    async def remove_driver(self, session_id: str, driver_id: str) -> None:
        async with self._transaction() as repo:
            await self._require_session(repo, session_id)
            if await repo.get_driver(session_id, driver_id) is None:
                raise NotFoundError("Pilota", driver_id)
            await repo.delete_driver(session_id, driver_id)

    # --- results ---

    async def _roster_names(self, repo: RaceRepository, session_id: str) -> Dict[str, str]:
        drivers = await repo.list_drivers([session_id])
        return {driver.id: driver.name for driver in drivers[session_id]}

    @staticmethod
    def _check_entries(results: Sequence, roster: Dict[str, str]) -> None:
        seen = set()
        for result in results:
            if result.driver_id in seen:
                raise PayloadValidationError(f"Pilota ripetuto nei risultati: {result.driver_id}")
            seen.add(result.driver_id)
            if result.driver_id not in roster:
                raise NotFoundError("Pilota", result.driver_id)

    async def save_qualifying_results(
        self,
        session_id: str,
        results: Sequence[race.QualifyingResult],
        status: Optional[race.SessionStatus] = None,
    ) -> race.SavedResults:
        async with self._transaction() as repo:
            record = await self._require_session(repo, session_id)
            if record.type != race.SessionKind.QUALIFYING.value:
                raise PayloadValidationError(f"La sessione {session_id} non e una qualifica")
            roster = await self._roster_names(repo, session_id)
            self._check_entries(results, roster)

            rows = [
                row.model_copy(update={"driver_name": row.driver_name or roster[row.driver_id]})
                for row in standings.normalize_qualifying(results)
            ]
            derived = standings.qualifying_status(rows, roster)
            self._note_status(session_id, status, derived)

            record.status = derived.value
            await repo.replace_qualifying_results(session_id, rows)
        return race.SavedResults(
            race_id=session_id, kind=race.SessionKind.QUALIFYING, results=rows, status=derived
        )

    async def save_race_results(
        self,
        session_id: str,
        results: Sequence[race.RaceResult],
        status: Optional[race.SessionStatus] = None,
    ) -> race.SavedResults:
        async with self._transaction() as repo:
            record = await self._require_session(repo, session_id)
            if record.type == race.SessionKind.QUALIFYING.value:
                raise PayloadValidationError(f"La sessione {session_id} e una qualifica")
            roster = await self._roster_names(repo, session_id)
            self._check_entries(results, roster)

            rows = [
                row.model_copy(update={"driver_name": row.driver_name or roster[row.driver_id]})
                for row in standings.normalize_race(results)
            ]
            derived = standings.race_status(rows, roster)
            self._note_status(session_id, status, derived)

            record.status = derived.value
            await repo.replace_race_results(session_id, rows)
        return race.SavedResults(
            race_id=session_id, kind=race.SessionKind(record.type), results=rows, status=derived
        )

    @staticmethod
    def _note_status(
        session_id: str, sent: Optional[race.SessionStatus], derived: race.SessionStatus
    ) -> None:
        if sent is not None and race.SessionStatus(sent) != derived:
            logger.debug("Stato %s per %s sostituito da %s", sent, session_id, derived.value)


