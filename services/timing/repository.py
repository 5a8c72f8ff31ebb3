from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from sqlalchemy import delete, func, literal_column, select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.schemas.race import QualifyingResult, RaceResult
from shared.utils.logging import configure_logging

from .models import Driver, Result, Round, Session, new_id

logger = configure_logging("timing.repository")

ROWID = literal_column("rowid")


class RaceRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # --- rounds ---

    async def list_rounds(self) -> List[Round]:
        stmt = select(Round).order_by(Round.sort_order, ROWID)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_round(self, round_id: str) -> Optional[Round]:
        return await self.session.get(Round, round_id)

    async def next_round_order(self) -> int:
        current = await self.session.scalar(select(func.max(Round.sort_order)))
        return 0 if current is None else current + 1

    async def add_round(self, name: str, tab_labels: Sequence[str], classes: List[str]) -> Round:
        record = Round(
            id=new_id("round"),
            name=name,
            sort_order=await self.next_round_order(),
            tab1_label=tab_labels[0],
            tab2_label=tab_labels[1],
            tab3_label=tab_labels[2],
            classes=classes,
        )
        self.session.add(record)
        await self.session.flush()
        logger.info("Creato round %s (%s)", record.id, name)
        return record

    async def delete_round(self, round_id: str) -> None:
        session_ids = select(Session.id).where(Session.round_id == round_id)
        await self.session.execute(delete(Result).where(Result.session_id.in_(session_ids)))
        await self.session.execute(delete(Driver).where(Driver.session_id.in_(session_ids)))
        await self.session.execute(delete(Session).where(Session.round_id == round_id))
        await self.session.execute(delete(Round).where(Round.id == round_id))

    # --- sessions ---

    async def get_session(self, session_id: str) -> Optional[Session]:
        return await self.session.get(Session, session_id)

    async def list_sessions(self, round_id: Optional[str] = None) -> List[Session]:
        stmt = select(Session).order_by(Session.sort_order, ROWID)
        if round_id is not None:
            stmt = stmt.where(Session.round_id == round_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def add_session(
        self,
        category: str,
        kind: str,
        race_class: str,
        label: str,
        round_id: str,
        is_endurance: bool,
    ) -> Session:
        current = await self.session.scalar(
            select(func.max(Session.sort_order)).where(Session.category == category)
        )
        record = Session(
            id=new_id("session"),
            type=kind,
            race_class=race_class,
            label=label,
            category=category,
            status="not-started",
            sort_order=0 if current is None else current + 1,
            round_id=round_id,
            is_endurance=is_endurance,
        )
        self.session.add(record)
        await self.session.flush()
        logger.info("Creata sessione %s (%s, %s)", record.id, category, label)
        return record

    # --- drivers ---

    async def list_drivers(self, session_ids: Sequence[str]) -> Dict[str, List[Driver]]:
        grouped: Dict[str, List[Driver]] = {session_id: [] for session_id in session_ids}
        if not session_ids:
            return grouped
        stmt = (
            select(Driver)
            .where(Driver.session_id.in_(session_ids))
            .order_by(Driver.sort_order, ROWID)
        )
        result = await self.session.execute(stmt)
        for driver in result.scalars().all():
            grouped[driver.session_id].append(driver)
        return grouped

    async def get_driver(self, session_id: str, driver_id: str) -> Optional[Driver]:
        stmt = select(Driver).where(Driver.id == driver_id).where(Driver.session_id == session_id)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def add_driver(self, session_id: str, name: str, is_team: bool = False, slug: str = "added") -> Driver:
        current = await self.session.scalar(
            select(func.max(Driver.sort_order)).where(Driver.session_id == session_id)
        )
        record = Driver(
            id=new_id(slug),
            session_id=session_id,
            name=name,
            sort_order=0 if current is None else current + 1,
            is_team=is_team,
        )
        self.session.add(record)
        await self.session.flush()
        return record

    async def delete_driver(self, session_id: str, driver_id: str) -> None:
        await self.session.execute(
            delete(Result).where(Result.session_id == session_id).where(Result.driver_id == driver_id)
        )
        await self.session.execute(
            delete(Driver).where(Driver.session_id == session_id).where(Driver.id == driver_id)
        )

    # --- results ---

    async def list_results(self, session_ids: Sequence[str]) -> Dict[str, List[Result]]:
        grouped: Dict[str, List[Result]] = {session_id: [] for session_id in session_ids}
        if not session_ids:
            return grouped
        stmt = (
            select(Result)
            .where(Result.session_id.in_(session_ids))
            .order_by(Result.position.asc().nulls_last(), ROWID)
        )
        result = await self.session.execute(stmt)
        for row in result.scalars().all():
            grouped[row.session_id].append(row)
        return grouped

    async def replace_qualifying_results(
        self, session_id: str, results: Sequence[QualifyingResult]
    ) -> None:
        await self.session.execute(delete(Result).where(Result.session_id == session_id))
        for payload in results:
            self.session.add(
                Result(
                    session_id=session_id,
                    driver_id=payload.driver_id,
                    driver_name=payload.driver_name,
                    position=payload.position,
                    best_lap=payload.best_lap,
                )
            )
        await self.session.flush()

    async def replace_race_results(self, session_id: str, results: Sequence[RaceResult]) -> None:
        await self.session.execute(delete(Result).where(Result.session_id == session_id))
        for payload in results:
            self.session.add(
                Result(
                    session_id=session_id,
                    driver_id=payload.driver_id,
                    driver_name=payload.driver_name,
                    position=payload.position,
                    best_lap=payload.best_lap,
                    total_time=payload.total_time,
                    gap=payload.gap,
                    lap_count=payload.lap_count,
                    team_lap_count=payload.team_lap_count,
                )
            )
        await self.session.flush()
