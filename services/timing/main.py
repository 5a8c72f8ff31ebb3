from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from shared.schemas.race import FullState, Round
from shared.utils.config import CoreSettings, get_settings
from shared.utils.logging import configure_logging

from .hub import RaceHub
from .store import RaceStore

settings = get_settings()
logger = configure_logging("timing.api", settings.log_level)


def create_app(app_settings: Optional[CoreSettings] = None) -> FastAPI:
    cfg = app_settings or settings
    store = RaceStore.from_url(cfg.database_url)
    hub = RaceHub(store)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        await store.init()
        logger.info("KPL race timing pronto (%s)", cfg.environment)
        try:
            yield
        finally:
            await store.close()
            logger.info("Store chiuso")

    app = FastAPI(
        title="KPL Race Timing",
        version="0.1.0",
        docs_url="/docs",
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.hub = hub

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.allowed_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.get("/healthz")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/rounds", response_model=List[Round], response_model_by_alias=True)
    async def list_rounds() -> List[Round]:
        return await store.list_rounds()

    @app.get("/state", response_model=FullState, response_model_by_alias=True)
    async def full_state(round_id: Optional[str] = None) -> FullState:
        return await store.get_full_state(round_id)

    @app.websocket("/ws")
    async def timing_ws(websocket: WebSocket) -> None:
        await websocket.accept()
        await hub.connect(websocket)
        try:
            while True:
                frame = await websocket.receive()
                if frame["type"] == "websocket.disconnect":
                    break
                await hub.handle_frame(websocket, frame)
        except WebSocketDisconnect:
            pass
        finally:
            await hub.disconnect(websocket)

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("services.timing.main:app", host=settings.host, port=settings.port, reload=False)


if __name__ == "__main__":
    run()
