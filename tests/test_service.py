"""Tests for the causes service (one picker per session user)."""

import asyncio

import pytest

from escalation.config import CausesSettings
from escalation.exceptions import CaseChangedException, ValidationException
from escalation.modules.causes.schemas import BridgeRow, SessionContext, Tag, Team
from escalation.modules.causes.service import CausesService, build_relation_store
from escalation.modules.causes.store import InMemoryRelationStore, MeteredRelationStore

from conftest import ControlledStore


@pytest.fixture
def store():
    """Ids as the service sees them: normalized to lower case."""
    return ControlledStore(
        tags=[
            Tag(id="t1", label="Fraud", owner_id="team-a"),
            Tag(id="t2", label="Billing", owner_id="team-b"),
            Tag(id="t3", label="Chargeback", owner_id="team-a"),
        ],
        rows=[
            BridgeRow(row_id="r1", parent_id="p1", tag_id="t1"),
            BridgeRow(row_id="r2", parent_id="p1", tag_id="t2"),
        ],
        memberships={"u1": [Team(team_id="team-a")]},
    )


@pytest.fixture
def service(store):
    return CausesService(store=store, settings=CausesSettings(store_backend="memory"))


def session(case_id, user_id="u1"):
    return SessionContext(user_id=user_id, parent_id=case_id)


class TestPickers:
    def test_one_picker_per_user(self, service):
        assert service.picker_for("U1") is service.picker_for("u1")
        assert service.picker_for("u1") is not service.picker_for("u2")

    def test_close_drops_picker(self, service):
        picker = service.picker_for("u1")
        service.close("u1")
        assert service.picker_for("u1") is not picker

    def test_build_memory_store(self):
        built = build_relation_store(CausesSettings(store_backend="memory"))
        assert isinstance(built, MeteredRelationStore)
        assert isinstance(built.inner, InMemoryRelationStore)


class TestOpenCase:
    @pytest.mark.asyncio
    async def test_reuses_loaded_case(self, service, store):
        await service.open_case(session("P1"))
        store.rows.clear()

        result = await service.open_case(session("P1"))

        # Served from the loaded state, not re-read
        assert len(result.selection) == 2

    @pytest.mark.asyncio
    async def test_reload_rereads(self, service, store):
        await service.open_case(session("P1"))
        store.rows.clear()

        result = await service.open_case(session("P1"), reload=True)

        assert result.selection == []

    @pytest.mark.asyncio
    async def test_case_ids_are_normalized(self, service, store):
        store.rows.clear()
        result = await service.open_case(session("{ABC}"))
        assert result.parent_id == "abc"

    @pytest.mark.asyncio
    async def test_empty_case_id_rejected(self, service):
        with pytest.raises(ValidationException):
            await service.open_case(session("{}"))


class TestUpdateSelection:
    @pytest.mark.asyncio
    async def test_switching_case_loads_it(self, service, store):
        await service.open_case(session("P1"))

        await service.update_selection(session("P2"), ["t3"])

        assert service.picker_for("u1").parent_id == "p2"
        assert store.create_calls == [("p2", "t3")]

    @pytest.mark.asyncio
    async def test_suggestions(self, service, store):
        items = await service.suggestions(session("P1"), "", show_all=True)
        assert [i.tag_id for i in items] == ["t3"]
        assert await service.suggestions(session("P1"), "") == []


class TestConcurrentRequests:
    """Requests for one user never apply a selection to the wrong case."""

    @pytest.mark.asyncio
    async def test_put_racing_get_for_new_case(self, service, store):
        await service.open_case(session("P1"))
        store.read_gate = asyncio.Event()

        put = asyncio.create_task(service.update_selection(session("P2"), ["t3"]))
        get = asyncio.create_task(service.open_case(session("P2")))
        await asyncio.sleep(0)
        store.read_gate.set()
        put_result, get_result = await asyncio.gather(put, get)

        assert put_result.parent_id == "p2"
        assert get_result.parent_id == "p2"
        assert store.delete_calls == []
        assert {"r1", "r2"} <= set(store.rows)
        assert store.create_calls == [("p2", "t3")]

    @pytest.mark.asyncio
    async def test_first_load_raced_by_get(self, service, store):
        store.read_gate = asyncio.Event()

        put = asyncio.create_task(service.update_selection(session("P1"), ["t1", "t2", "t3"]))
        get = asyncio.create_task(service.open_case(session("P1")))
        await asyncio.sleep(0)
        store.read_gate.set()
        put_result, _ = await asyncio.gather(put, get)

        assert [e.tag_id for e in put_result.selection] == ["t1", "t2", "t3"]
        assert store.create_calls == [("p1", "t3")]

    @pytest.mark.asyncio
    async def test_superseded_bind_raises_conflict(self, service, store):
        picker = service.picker_for("u1")
        store.read_gate = asyncio.Event()

        opening = asyncio.create_task(service.open_case(session("P2")))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        direct = asyncio.create_task(picker.load("p1"))
        await asyncio.sleep(0)
        store.read_gate.set()

        with pytest.raises(CaseChangedException) as exc_info:
            await opening
        await direct

        assert exc_info.value.status_code == 409
        assert picker.parent_id == "p1"


class TestSelectionChangeHook:
    @pytest.mark.asyncio
    async def test_hook_hears_settled_selection(self, store):
        heard = []
        service = CausesService(
            store=store,
            settings=CausesSettings(store_backend="memory"),
            on_selection_change=lambda user_id, entries: heard.append((user_id, [e.tag_id for e in entries])),
        )

        await service.update_selection(session("P1"), ["t1", "t3"])

        assert heard == [("u1", ["t1", "t3"])]

    @pytest.mark.asyncio
    async def test_async_hook_awaited(self, store):
        heard = []

        async def hook(user_id, entries):
            heard.append(user_id)

        service = CausesService(store=store, settings=CausesSettings(store_backend="memory"), on_selection_change=hook)
        await service.update_selection(session("P1"), ["t1"])

        assert heard == ["u1"]
