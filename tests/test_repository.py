"""
Tests for the Supabase-backed relation store.

The supabase client is replaced by a MagicMock query chain.
"""

from unittest.mock import MagicMock

import pytest

from escalation.config import CausesSettings
from escalation.exceptions import StoreReadFailure, StoreWriteFailure, TagNotFound
from escalation.modules.causes.repository import SupabaseRelationStore
from escalation.modules.causes.store import normalize_id


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def relation_store(client):
    return SupabaseRelationStore(client=client, settings=CausesSettings())


def _table(client):
    return client.table.return_value


class TestNormalizeId:
    def test_strips_braces_and_lowercases(self):
        assert normalize_id("{ABC-1}") == "abc-1"
        assert normalize_id("  Abc ") == "abc"
        assert normalize_id(None) == ""


class TestReads:
    """Rows are mapped to typed records with normalized ids."""

    @pytest.mark.asyncio
    async def test_list_bridge_rows(self, client, relation_store):
        _table(client).select.return_value.eq.return_value.execute.return_value = MagicMock(
            data=[{"id": "{R1}", "case_id": "P1", "cause_id": "{T1}", "owner_id": "U1"}]
        )

        rows = await relation_store.list_bridge_rows("{P1}")

        assert len(rows) == 1
        assert rows[0].row_id == "r1"
        assert rows[0].tag_id == "t1"
        assert rows[0].created_by == "u1"
        client.table.assert_called_with("case_escalation_causes")
        _table(client).select.return_value.eq.assert_called_with("case_id", "p1")

    @pytest.mark.asyncio
    async def test_list_tags(self, client, relation_store):
        _table(client).select.return_value.execute.return_value = MagicMock(
            data=[
                {"id": "T1", "name": "Fraud", "owner_id": "{TEAM-A}", "owner_name": "Fraud Team"},
                {"id": "T2", "name": "Billing", "owner_id": None, "owner_name": None},
            ]
        )

        tags = await relation_store.list_tags()

        assert [t.id for t in tags] == ["t1", "t2"]
        assert tags[0].owner_id == "team-a"
        assert tags[1].owner_id is None

    @pytest.mark.asyncio
    async def test_list_session_teams(self, client, relation_store):
        _table(client).select.return_value.eq.return_value.execute.return_value = MagicMock(
            data=[{"team_id": "TEAM-A", "teams": {"name": "Fraud Team"}}, {"team_id": "team-b", "teams": None}]
        )

        teams = await relation_store.list_session_teams("U1")

        assert [(t.team_id, t.team_name) for t in teams] == [("team-a", "Fraud Team"), ("team-b", None)]

    @pytest.mark.asyncio
    async def test_client_error_becomes_read_failure(self, client, relation_store):
        _table(client).select.return_value.eq.return_value.execute.side_effect = RuntimeError("connection reset")

        with pytest.raises(StoreReadFailure) as exc_info:
            await relation_store.list_bridge_rows("p1")

        assert exc_info.value.status_code == 502
        assert "connection reset" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_malformed_row_becomes_read_failure(self, client, relation_store):
        _table(client).select.return_value.eq.return_value.execute.return_value = MagicMock(
            data=[{"id": "r1", "case_id": "p1"}]
        )

        with pytest.raises(StoreReadFailure):
            await relation_store.list_bridge_rows("p1")


class TestResolveTag:
    @pytest.mark.asyncio
    async def test_found(self, client, relation_store):
        _table(client).select.return_value.eq.return_value.limit.return_value.execute.return_value = MagicMock(
            data=[{"id": "t2", "name": "Billing", "owner_id": "team-b"}]
        )

        tag = await relation_store.resolve_tag("t2")

        assert tag.label == "Billing"

    @pytest.mark.asyncio
    async def test_missing_raises_tag_not_found(self, client, relation_store):
        _table(client).select.return_value.eq.return_value.limit.return_value.execute.return_value = MagicMock(data=[])

        with pytest.raises(TagNotFound):
            await relation_store.resolve_tag("gone")

    @pytest.mark.asyncio
    async def test_nameless_row_is_not_found(self, client, relation_store):
        _table(client).select.return_value.eq.return_value.limit.return_value.execute.return_value = MagicMock(
            data=[{"id": "t2", "name": None}]
        )

        with pytest.raises(TagNotFound):
            await relation_store.resolve_tag("t2")


class TestWrites:
    """Creates and deletes map failures to StoreWriteFailure."""

    @pytest.mark.asyncio
    async def test_create_bridge_row(self, client, relation_store):
        _table(client).insert.return_value.execute.return_value = MagicMock(data=[{"id": "{NEW-ROW}"}])

        row_id = await relation_store.create_bridge_row("P1", "T3", "U1", "Chargeback")

        assert row_id == "new-row"
        _table(client).insert.assert_called_once_with(
            {"case_id": "p1", "cause_id": "t3", "owner_id": "u1", "name": "Chargeback"}
        )

    @pytest.mark.asyncio
    async def test_create_without_rows_fails(self, client, relation_store):
        _table(client).insert.return_value.execute.return_value = MagicMock(data=[])

        with pytest.raises(StoreWriteFailure) as exc_info:
            await relation_store.create_bridge_row("p1", "t3", "u1")

        assert exc_info.value.details["tag_id"] == "t3"

    @pytest.mark.asyncio
    async def test_create_without_id_fails(self, client, relation_store):
        _table(client).insert.return_value.execute.return_value = MagicMock(data=[{"case_id": "p1"}])

        with pytest.raises(StoreWriteFailure):
            await relation_store.create_bridge_row("p1", "t3", "u1")

    @pytest.mark.asyncio
    async def test_delete_bridge_row(self, client, relation_store):
        _table(client).delete.return_value.eq.return_value.execute.return_value = MagicMock(data=[{"id": "r1"}])

        await relation_store.delete_bridge_row("{R1}")

        _table(client).delete.return_value.eq.assert_called_once_with("id", "r1")

    @pytest.mark.asyncio
    async def test_delete_of_missing_row_is_not_an_error(self, client, relation_store):
        _table(client).delete.return_value.eq.return_value.execute.return_value = MagicMock(data=[])

        await relation_store.delete_bridge_row("r1")

    @pytest.mark.asyncio
    async def test_delete_error(self, client, relation_store):
        _table(client).delete.return_value.eq.return_value.execute.side_effect = RuntimeError("permission denied")

        with pytest.raises(StoreWriteFailure):
            await relation_store.delete_bridge_row("r1")
