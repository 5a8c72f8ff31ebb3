"""Event routing and fan-out of the race hub."""

from __future__ import annotations

import json

import pytest
import pytest_asyncio
from sqlalchemy import text

from services.timing.hub import RaceHub

from conftest import FakeConnection


@pytest_asyncio.fixture
async def hub(store):
    return RaceHub(store)


@pytest_asyncio.fixture
async def clients(hub):
    first, second = FakeConnection(), FakeConnection()
    await hub.connect(first)
    await hub.connect(second)
    first.sent.clear()
    second.sent.clear()
    return first, second


class TestConnections:
    @pytest.mark.asyncio
    async def test_count_is_announced_to_everyone(self, hub):
        first, second = FakeConnection(), FakeConnection()
        await hub.connect(first)
        await hub.connect(second)
        assert first.last("connection:count") == {"count": 2}
        assert second.last("connection:count") == {"count": 2}

        await hub.disconnect(second)
        assert first.last("connection:count") == {"count": 1}

    @pytest.mark.asyncio
    async def test_disconnect_twice_is_harmless(self, hub, clients):
        first, second = clients
        await hub.disconnect(second)
        await hub.disconnect(second)
        assert first.events() == ["connection:count"]

    @pytest.mark.asyncio
    async def test_failed_send_drops_the_connection(self, hub, clients):
        first, _ = clients
        broken = FakeConnection(fail=True)
        hub.connections.add(broken)

        await hub.handle(first, {"event": "round:add", "data": {"name": "Round 3"}})

        assert broken not in hub.connections
        assert first.last("connection:count") == {"count": 2}


class TestRounds:
    @pytest.mark.asyncio
    async def test_round_add_reaches_all_clients(self, hub, clients):
        first, second = clients
        await hub.handle(first, {"event": "round:add", "data": {"name": "Round 3"}})
        for client in clients:
            (item,) = client.last("round:listResult")
            assert item["name"] == "Round 3"
            assert item["tabLabels"] == ["Qualifying", "Super Sprint", "Endurance"]
            assert item["classes"] == ["junior", "pro"]

    @pytest.mark.asyncio
    async def test_round_list_replies_to_requester_only(self, hub, clients, round_id):
        first, second = clients
        await hub.handle(first, {"event": "round:list"})
        assert [item["id"] for item in first.last("round:listResult")] == [round_id]
        assert second.sent == []

    @pytest.mark.asyncio
    async def test_round_update_and_delete(self, hub, clients, round_id):
        first, second = clients
        await hub.handle(first, {"event": "round:update", "data": {"roundId": round_id, "name": "Round 3 - Sentul"}})
        assert second.last("round:listResult")[0]["name"] == "Round 3 - Sentul"

        await hub.handle(first, {"event": "round:delete", "data": {"roundId": round_id}})
        assert second.last("round:listResult") == []


class TestState:
    @pytest.mark.asyncio
    async def test_full_state_is_a_private_reply(self, hub, clients, round_id, qualifying_id):
        first, second = clients
        await hub.handle(first, {"event": "data:requestFull", "data": {"roundId": round_id}})
        state = first.last("data:fullState")
        assert state["roundId"] == round_id
        assert [session["id"] for session in state["qualifying"]] == [qualifying_id]
        assert state["heatsAndRace1"] == []
        assert state["finalAndRace2"] == []
        assert second.sent == []

    @pytest.mark.asyncio
    async def test_session_add_broadcasts_the_round(self, hub, clients, round_id):
        first, second = clients
        await hub.handle(
            first,
            {
                "event": "session:add",
                "data": {
                    "category": "finalAndRace2",
                    "type": "race",
                    "raceClass": "junior",
                    "label": "Race 2 Junior",
                    "roundId": round_id,
                },
            },
        )
        (session,) = second.last("data:fullState")["finalAndRace2"]
        assert session["label"] == "Race 2 Junior"
        assert session["isEndurance"] is True
        assert session["status"] == "not-started"

    @pytest.mark.asyncio
    async def test_session_class_change_broadcasts_the_round(self, hub, clients, round_id, race_id):
        first, second = clients
        await hub.handle(first, {"event": "session:updateClass", "data": {"raceId": race_id, "raceClass": "pro-am"}})
        state = second.last("data:fullState")
        assert state["roundId"] == round_id
        assert state["heatsAndRace1"][0]["raceClass"] == "pro-am"

    @pytest.mark.asyncio
    async def test_endurance_toggle_broadcasts_the_round(self, hub, clients, round_id, race_id):
        first, second = clients
        await hub.handle(
            first, {"event": "session:updateEndurance", "data": {"raceId": race_id, "isEndurance": True}}
        )
        for client in clients:
            state = client.last("data:fullState")
            assert state["roundId"] == round_id
            assert state["heatsAndRace1"][0]["isEndurance"] is True

    @pytest.mark.asyncio
    async def test_endurance_toggle_unknown_session(self, hub, clients):
        first, second = clients
        await hub.handle(
            first,
            {"event": "session:updateEndurance", "data": {"raceId": "session-missing", "isEndurance": True}},
        )
        assert first.last("error")["kind"] == "NotFound"
        assert second.sent == []

    @pytest.mark.asyncio
    async def test_label_update(self, hub, clients, race_id):
        first, second = clients
        await hub.handle(first, {"event": "session:updateLabel", "data": {"raceId": race_id, "label": "Heat A"}})
        assert second.last("session:labelUpdated") == {"raceId": race_id, "label": "Heat A"}


class TestResults:
    @pytest.mark.asyncio
    async def test_race_save_broadcasts_the_stored_rows(self, hub, clients, store, race_id):
        first, second = clients
        a = await store.add_driver(race_id, "A")
        b = await store.add_driver(race_id, "B")
        await hub.handle(
            first,
            {
                "event": "race:save",
                "data": {
                    "raceId": race_id,
                    "results": [{"driverId": b.id, "gap": "+1"}, {"driverId": a.id, "gap": "0.4"}],
                    "status": "not-started",
                },
            },
        )
        for client in clients:
            saved = client.last("race:saved")
            assert set(saved) == {"raceId", "results", "status"}
            assert saved["status"] == "completed"
            assert [(row["driverId"], row["position"], row["gap"]) for row in saved["results"]] == [
                (b.id, 1, "--"),
                (a.id, 2, "+0.4"),
            ]

    @pytest.mark.asyncio
    async def test_qualifying_save(self, hub, clients, store, qualifying_id):
        first, second = clients
        a = await store.add_driver(qualifying_id, "A")
        await hub.handle(
            first,
            {"event": "qualifying:save", "data": {"raceId": qualifying_id, "results": [{"driverId": a.id, "bestLap": "42.35"}]}},
        )
        saved = second.last("qualifying:saved")
        assert saved["results"][0]["bestLap"] == "00:42.350"
        assert saved["results"][0]["position"] == 1
        assert saved["results"][0]["driverName"] == "A"

    @pytest.mark.asyncio
    async def test_driver_add_and_remove(self, hub, clients, race_id):
        first, second = clients
        await hub.handle(first, {"event": "driver:add", "data": {"raceId": race_id, "name": "Budi"}})
        added = second.last("driver:added")
        assert added["raceId"] == race_id
        assert added["driver"]["name"] == "Budi"
        assert added["driver"]["isTeam"] is False

        driver_id = added["driver"]["id"]
        await hub.handle(first, {"event": "driver:remove", "data": {"raceId": race_id, "driverId": driver_id}})
        assert second.last("driver:removed") == {"driverId": driver_id, "raceId": race_id}


class TestErrors:
    @pytest.mark.asyncio
    async def test_not_found_goes_to_requester_only(self, hub, clients):
        first, second = clients
        await hub.handle(first, {"event": "race:save", "data": {"raceId": "session-missing", "results": []}})
        error = first.last("error")
        assert error["event"] == "race:save"
        assert error["kind"] == "NotFound"
        assert second.sent == []

    @pytest.mark.asyncio
    async def test_invalid_payload(self, hub, clients):
        first, second = clients
        await hub.handle(first, {"event": "driver:add", "data": {"raceId": "x"}})
        assert first.last("error")["kind"] == "ValidationError"
        assert second.sent == []

    @pytest.mark.asyncio
    async def test_session_add_without_round(self, hub, clients):
        first, second = clients
        await hub.handle(
            first,
            {
                "event": "session:add",
                "data": {"category": "qualifying", "type": "qualifying", "raceClass": "pro", "label": "Q"},
            },
        )
        assert first.last("error")["kind"] == "ValidationError"
        assert "data:fullState" not in second.events()

    @pytest.mark.asyncio
    async def test_unknown_event(self, hub, clients):
        first, _ = clients
        await hub.handle(first, {"event": "race:explode", "data": {}})
        assert first.last("error") == {
            "event": "race:explode",
            "kind": "ValidationError",
            "message": "Evento sconosciuto: race:explode",
        }

    @pytest.mark.asyncio
    async def test_malformed_frames(self, hub, clients):
        first, _ = clients
        await hub.handle_text(first, "not json")
        await hub.handle_text(first, json.dumps({"data": {}}))
        await hub.handle_text(first, json.dumps([1, 2]))
        assert first.events() == ["error", "error", "error"]

    @pytest.mark.asyncio
    async def test_binary_frame_is_rejected(self, hub, clients):
        first, second = clients
        await hub.handle_frame(first, {"type": "websocket.receive", "bytes": b"\x00\x01"})
        assert first.last("error")["kind"] == "ValidationError"
        assert second.sent == []

    @pytest.mark.asyncio
    async def test_error_reply_to_closed_socket(self, hub):
        closed = FakeConnection(fail=True)
        await hub.handle(closed, {"event": "race:explode"})
        assert closed.sent == []

    @pytest.mark.asyncio
    async def test_storage_failure_stays_with_requester(self, hub, clients, store, race_id):
        first, second = clients
        driver = await store.add_driver(race_id, "A")
        async with store.database.engine.begin() as conn:
            await conn.execute(text("DROP TABLE results"))

        await hub.handle(
            first, {"event": "race:save", "data": {"raceId": race_id, "results": [{"driverId": driver.id}]}}
        )
        assert first.last("error")["kind"] == "StorageError"
        assert second.sent == []

        await hub.handle(second, {"event": "driver:add", "data": {"raceId": race_id, "name": "Budi"}})
        for client in clients:
            assert client.last("driver:added")["driver"]["name"] == "Budi"
