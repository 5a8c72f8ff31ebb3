from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Type, TypeVar

from fastapi import WebSocketDisconnect
from pydantic import BaseModel, ValidationError

from shared.schemas.events import (
    ClientEvent,
    DriverAddPayload,
    DriverRemovePayload,
    Envelope,
    ErrorPayload,
    FullStateRequest,
    QualifyingSavePayload,
    RaceSavePayload,
    RoundAddPayload,
    RoundDeletePayload,
    RoundUpdatePayload,
    ServerEvent,
    SessionAddPayload,
    SessionUpdateClassPayload,
    SessionUpdateEndurancePayload,
    SessionUpdateLabelPayload,
)
from shared.utils.logging import configure_logging

from .errors import PayloadValidationError, StorageError, TimingError
from .store import RaceStore

logger = configure_logging("timing.hub")

PayloadT = TypeVar("PayloadT", bound=BaseModel)


class Connection(Protocol):
    async def send_json(self, data: Any) -> None: ...


Handler = Callable[[Connection, Any], Awaitable[None]]


class RaceHub:
    """Fans every accepted mutation out to all connected clients.

    One inbound event is processed to completion (store write, then broadcast)
    before the next one starts, whichever connection it came from.
    """

    def __init__(self, store: RaceStore) -> None:
        self.store = store
        self.connections: set[Connection] = set()
        self._lock = asyncio.Lock()
        self._handlers: Dict[str, Handler] = {
            ClientEvent.ROUND_LIST.value: self._round_list,
            ClientEvent.ROUND_ADD.value: self._round_add,
            ClientEvent.ROUND_UPDATE.value: self._round_update,
            ClientEvent.ROUND_DELETE.value: self._round_delete,
            ClientEvent.DATA_REQUEST_FULL.value: self._request_full,
            ClientEvent.RACE_SAVE.value: self._race_save,
            ClientEvent.QUALIFYING_SAVE.value: self._qualifying_save,
            ClientEvent.DRIVER_ADD.value: self._driver_add,
            ClientEvent.DRIVER_REMOVE.value: self._driver_remove,
            ClientEvent.SESSION_ADD.value: self._session_add,
            ClientEvent.SESSION_UPDATE_LABEL.value: self._session_update_label,
            ClientEvent.SESSION_UPDATE_CLASS.value: self._session_update_class,
            ClientEvent.SESSION_UPDATE_ENDURANCE.value: self._session_update_endurance,
        }

    # --- connections ---

    async def connect(self, connection: Connection) -> None:
        self.connections.add(connection)
        logger.info("Client connesso (%s totali)", len(self.connections))
        await self._announce_count()

    async def disconnect(self, connection: Connection) -> None:
        if connection not in self.connections:
            return
        self.connections.discard(connection)
        logger.info("Client disconnesso (%s totali)", len(self.connections))
        await self._announce_count()

    async def _announce_count(self) -> None:
        await self.broadcast(ServerEvent.CONNECTION_COUNT, {"count": len(self.connections)})

    async def broadcast(self, event: ServerEvent, data: Any) -> None:
        payload = Envelope.of(event, data)
        disconnected: List[Connection] = []
        for connection in list(self.connections):
            try:
                await connection.send_json(payload)
            except (WebSocketDisconnect, RuntimeError, OSError) as exc:
                logger.warning("Invio %s fallito, client rimosso: %s", event.value, exc)
                disconnected.append(connection)
        if disconnected:
            for connection in disconnected:
                self.connections.discard(connection)
            await self._announce_count()

    async def send(self, connection: Connection, event: ServerEvent, data: Any) -> None:
        await connection.send_json(Envelope.of(event, data))

    # --- inbound ---

    async def handle_frame(self, connection: Connection, frame: Dict[str, Any]) -> None:
        """Dispatch one raw ASGI ``websocket.receive`` message; only text frames carry events."""
        raw = frame.get("text")
        if raw is None:
            await self._reject(connection, "", PayloadValidationError("Frame binario non supportato"))
            return
        await self.handle_text(connection, raw)

    async def handle_text(self, connection: Connection, raw: str) -> None:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            await self._reject(connection, "", PayloadValidationError("Messaggio non JSON"))
            return
        await self.handle(connection, message)

    async def handle(self, connection: Connection, message: Any) -> None:
        try:
            envelope = Envelope.model_validate(message)
        except ValidationError:
            await self._reject(connection, "", PayloadValidationError("Messaggio senza nome evento"))
            return

        handler = self._handlers.get(envelope.event)
        if handler is None:
            await self._reject(
                connection, envelope.event, PayloadValidationError(f"Evento sconosciuto: {envelope.event}")
            )
            return

        async with self._lock:
            try:
                await handler(connection, envelope.data)
            except StorageError as exc:
                logger.error("Evento %s fallito per errore di storage: %s", envelope.event, exc)
                await self._reject(connection, envelope.event, exc)
            except TimingError as exc:
                logger.warning("Evento %s rifiutato: %s", envelope.event, exc)
                await self._reject(connection, envelope.event, exc)

    async def _reject(self, connection: Connection, event: str, error: TimingError) -> None:
        payload = ErrorPayload(event=event, kind=error.kind, message=error.message)
        try:
            await self.send(connection, ServerEvent.ERROR, payload.to_wire())
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            # the transport loop drops the connection on its next receive
            logger.warning("Risposta di errore non consegnata: %s", exc)

    @staticmethod
    def _parse(model: Type[PayloadT], data: Any) -> PayloadT:
        try:
            return model.model_validate(data if data is not None else {})
        except ValidationError as exc:
            fields = ", ".join(".".join(str(part) for part in error["loc"]) for error in exc.errors())
            raise PayloadValidationError(f"Payload non valido ({fields or model.__name__})") from exc

    # --- rounds ---

    async def _rounds_wire(self) -> List[dict]:
        return [item.to_wire() for item in await self.store.list_rounds()]

    async def _round_list(self, connection: Connection, data: Any) -> None:
        await self.send(connection, ServerEvent.ROUND_LIST_RESULT, await self._rounds_wire())

    async def _round_add(self, connection: Connection, data: Any) -> None:
        payload = self._parse(RoundAddPayload, data)
        await self.store.create_round(payload.name, payload.tab_labels, payload.classes, seed=payload.seed)
        await self.broadcast(ServerEvent.ROUND_LIST_RESULT, await self._rounds_wire())

    async def _round_update(self, connection: Connection, data: Any) -> None:
        payload = self._parse(RoundUpdatePayload, data)
        await self.store.update_round(
            payload.round_id, name=payload.name, tab_labels=payload.tab_labels, classes=payload.classes
        )
        await self.broadcast(ServerEvent.ROUND_LIST_RESULT, await self._rounds_wire())

    async def _round_delete(self, connection: Connection, data: Any) -> None:
        payload = self._parse(RoundDeletePayload, data)
        await self.store.delete_round(payload.round_id)
        await self.broadcast(ServerEvent.ROUND_LIST_RESULT, await self._rounds_wire())

    # --- state ---

    async def _full_state_wire(self, round_id: Optional[str]) -> dict:
        state = await self.store.get_full_state(round_id)
        return state.to_wire()

    async def _request_full(self, connection: Connection, data: Any) -> None:
        payload = self._parse(FullStateRequest, data)
        await self.send(connection, ServerEvent.FULL_STATE, await self._full_state_wire(payload.round_id))

    # --- results ---

    async def _race_save(self, connection: Connection, data: Any) -> None:
        payload = self._parse(RaceSavePayload, data)
        saved = await self.store.save_race_results(payload.race_id, payload.results, payload.status)
        wire = saved.to_wire()
        wire.pop("kind")
        await self.broadcast(ServerEvent.RACE_SAVED, wire)

    async def _qualifying_save(self, connection: Connection, data: Any) -> None:
        payload = self._parse(QualifyingSavePayload, data)
        saved = await self.store.save_qualifying_results(payload.race_id, payload.results, payload.status)
        wire = saved.to_wire()
        wire.pop("kind")
        await self.broadcast(ServerEvent.QUALIFYING_SAVED, wire)

    # --- drivers ---

    async def _driver_add(self, connection: Connection, data: Any) -> None:
        payload = self._parse(DriverAddPayload, data)
        driver = await self.store.add_driver(payload.race_id, payload.name)
        await self.broadcast(ServerEvent.DRIVER_ADDED, {"driver": driver.to_wire(), "raceId": payload.race_id})

    async def _driver_remove(self, connection: Connection, data: Any) -> None:
        payload = self._parse(DriverRemovePayload, data)
        await self.store.remove_driver(payload.race_id, payload.driver_id)
        await self.broadcast(
            ServerEvent.DRIVER_REMOVED, {"driverId": payload.driver_id, "raceId": payload.race_id}
        )

    # --- sessions ---

    async def _session_add(self, connection: Connection, data: Any) -> None:
        payload = self._parse(SessionAddPayload, data)
        await self.store.create_session(
            payload.category, payload.type, payload.race_class, payload.label, payload.round_id
        )
        await self.broadcast(ServerEvent.FULL_STATE, await self._full_state_wire(payload.round_id))

    async def _session_update_label(self, connection: Connection, data: Any) -> None:
        payload = self._parse(SessionUpdateLabelPayload, data)
        await self.store.update_session_label(payload.race_id, payload.label)
        await self.broadcast(
            ServerEvent.SESSION_LABEL_UPDATED, {"raceId": payload.race_id, "label": payload.label}
        )

    async def _session_update_class(self, connection: Connection, data: Any) -> None:
        payload = self._parse(SessionUpdateClassPayload, data)
        await self.store.update_session_class(payload.race_id, payload.race_class)
        round_id = await self.store.get_round_id_for_session(payload.race_id)
        await self.broadcast(ServerEvent.FULL_STATE, await self._full_state_wire(round_id))

    async def _session_update_endurance(self, connection: Connection, data: Any) -> None:
        payload = self._parse(SessionUpdateEndurancePayload, data)
        await self.store.set_session_endurance(payload.race_id, payload.is_endurance)
        round_id = await self.store.get_round_id_for_session(payload.race_id)
        await self.broadcast(ServerEvent.FULL_STATE, await self._full_state_wire(round_id))
