from __future__ import annotations

import argparse
import asyncio
from typing import List, Optional

from services.timing.store import RaceStore
from shared.schemas.race import DEFAULT_CLASSES, RaceClass
from shared.utils.config import get_settings
from shared.utils.logging import configure_logging

logger = configure_logging("timing.seed")


async def seed(name: str, classes: List[RaceClass], tab_labels: Optional[List[str]], database_url: str) -> None:
    store = RaceStore.from_url(database_url)
    await store.init()
    try:
        created = await store.create_round(
            name, tuple(tab_labels) if tab_labels else None, classes, seed=True
        )
        state = await store.get_full_state(created.id)
        logger.info(
            "Round %s creato con %s sessioni (%s)",
            created.name,
            len(state.sessions()),
            created.id,
        )
    finally:
        await store.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Crea un round con sessioni e piloti del team")
    parser.add_argument("name", help="Nome del round, es. 'Round 3'")
    parser.add_argument(
        "--classes",
        nargs="+",
        choices=[value.value for value in RaceClass],
        default=[value.value for value in DEFAULT_CLASSES],
        help="Classi in gara",
    )
    parser.add_argument("--tabs", nargs=3, metavar="LABEL", help="Etichette delle tre schede")
    parser.add_argument("--database-url", default=None, help="Override di DATABASE_URL")
    args = parser.parse_args()

    database_url = args.database_url or get_settings().database_url
    classes = [RaceClass(value) for value in args.classes]
    asyncio.run(seed(args.name, classes, args.tabs, database_url))


if __name__ == "__main__":
    main()
