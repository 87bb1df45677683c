"""
Shared fixtures: an in-memory relation store with failure injection and a
gate that holds writes (and optionally reads) in flight.
"""

import asyncio

import pytest

from escalation.config import CausesSettings
from escalation.exceptions import StoreReadFailure, StoreWriteFailure
from escalation.modules.causes.reconciler import ReconciliationEngine
from escalation.modules.causes.schemas import BridgeRow, Tag, Team
from escalation.modules.causes.store import InMemoryRelationStore
from escalation.observability.metrics import MetricsStore

USER_ID = "u1"


class ControlledStore(InMemoryRelationStore):
    """In-memory store that records writes and fails or blocks on demand."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_creates: set[str] = set()
        self.fail_deletes: set[str] = set()
        self.fail_reads = False
        self.gate: asyncio.Event | None = None
        self.read_gate: asyncio.Event | None = None
        self.create_calls: list[tuple[str, str]] = []
        self.delete_calls: list[str] = []

    async def _wait(self):
        if self.gate is not None:
            await self.gate.wait()

    async def list_tags(self):
        if self.read_gate is not None:
            await self.read_gate.wait()
        return await super().list_tags()

    async def list_bridge_rows(self, parent_id):
        if self.fail_reads:
            raise StoreReadFailure("list_bridge_rows", "connection reset")
        return await super().list_bridge_rows(parent_id)

    async def create_bridge_row(self, parent_id, tag_id, created_by, label=None):
        self.create_calls.append((parent_id, tag_id))
        await self._wait()
        if tag_id in self.fail_creates:
            raise StoreWriteFailure("create_bridge_row", "insert rejected", tag_id=tag_id)
        return await super().create_bridge_row(parent_id, tag_id, created_by, label)

    async def delete_bridge_row(self, row_id):
        self.delete_calls.append(row_id)
        await self._wait()
        if row_id in self.fail_deletes:
            raise StoreWriteFailure("delete_bridge_row", "delete rejected")
        await super().delete_bridge_row(row_id)


@pytest.fixture
def store():
    """P1 has Fraud (owned by OwnerA) and Billing (owned by OwnerB) attached.

    The session user is on OwnerA, which also owns Chargeback and Dispute.
    """
    return ControlledStore(
        tags=[
            Tag(id="T1", label="Fraud", owner_id="OwnerA"),
            Tag(id="T2", label="Billing", owner_id="OwnerB"),
            Tag(id="T3", label="Chargeback", owner_id="OwnerA"),
            Tag(id="T4", label="Dispute", owner_id="OwnerA"),
        ],
        rows=[
            BridgeRow(row_id="R1", parent_id="P1", tag_id="T1", created_by=USER_ID),
            BridgeRow(row_id="R2", parent_id="P1", tag_id="T2", created_by="someone-else"),
        ],
        memberships={USER_ID: [Team(team_id="OwnerA", team_name="Fraud Team")]},
    )


@pytest.fixture
def settings():
    return CausesSettings(store_backend="memory", selection_limit=10)


@pytest.fixture
def metrics():
    return MetricsStore()


@pytest.fixture
def make_engine(store, settings, metrics):
    def _make(**kwargs):
        return ReconciliationEngine(
            kwargs.pop("store", store),
            USER_ID,
            settings=kwargs.pop("settings", settings),
            metrics=metrics,
            **kwargs,
        )

    return _make
