"""
Escalation Causes - Relation Store.

Contract for the remote store that holds causes, case-to-cause bridge rows,
and team memberships, plus an in-memory implementation for local runs.
"""

import logging
import time
from abc import ABC, abstractmethod
from uuid import uuid4

from escalation.exceptions import EscalationException, TagNotFound
from escalation.observability import MetricsStore, get_metrics_store
from .schemas import BridgeRow, Tag, Team

logger = logging.getLogger(__name__)


def normalize_id(value: str | None) -> str:
    """Strip GUID braces and lower-case. '{ABC-1}' -> 'abc-1'."""
    return (value or "").strip().strip("{}").lower()


class RelationStore(ABC):
    """
    Remote relation store consumed by the picker.

    Implementations raise StoreReadFailure for read errors, StoreWriteFailure
    for create/delete errors and TagNotFound when a cause does not resolve.
    """

    @abstractmethod
    async def list_bridge_rows(self, parent_id: str) -> list[BridgeRow]:
        """List bridge rows attached to a case."""
        ...

    @abstractmethod
    async def list_tags(self) -> list[Tag]:
        """List every cause."""
        ...

    @abstractmethod
    async def resolve_tag(self, tag_id: str) -> Tag:
        """Look a cause up directly, bypassing any visibility filter."""
        ...

    @abstractmethod
    async def create_bridge_row(
        self,
        parent_id: str,
        tag_id: str,
        created_by: str,
        label: str | None = None,
    ) -> str:
        """Attach a cause to a case. Returns the new row id."""
        ...

    @abstractmethod
    async def delete_bridge_row(self, row_id: str) -> None:
        """Detach a cause by bridge row id."""
        ...

    @abstractmethod
    async def list_session_teams(self, user_id: str) -> list[Team]:
        """List the teams a user belongs to."""
        ...


# =============================================================================
# In-Memory Storage
# =============================================================================

class InMemoryRelationStore(RelationStore):
    """Dict-backed store. One process, no persistence."""

    def __init__(
        self,
        tags: list[Tag] | None = None,
        rows: list[BridgeRow] | None = None,
        memberships: dict[str, list[Team]] | None = None,
    ):
        # Structure: {tag_id: Tag}
        self.tags: dict[str, Tag] = {t.id: t for t in tags or []}
        # Structure: {row_id: BridgeRow}, insertion ordered
        self.rows: dict[str, BridgeRow] = {r.row_id: r for r in rows or []}
        # Structure: {user_id: [Team]}
        self.memberships: dict[str, list[Team]] = dict(memberships or {})

    async def list_bridge_rows(self, parent_id: str) -> list[BridgeRow]:
        return [r for r in self.rows.values() if r.parent_id == parent_id]

    async def list_tags(self) -> list[Tag]:
        return list(self.tags.values())

    async def resolve_tag(self, tag_id: str) -> Tag:
        tag = self.tags.get(tag_id)
        if tag is None:
            raise TagNotFound(tag_id)
        return tag

    async def create_bridge_row(
        self,
        parent_id: str,
        tag_id: str,
        created_by: str,
        label: str | None = None,
    ) -> str:
        row_id = str(uuid4())
        self.rows[row_id] = BridgeRow(
            row_id=row_id,
            parent_id=parent_id,
            tag_id=tag_id,
            created_by=created_by,
        )
        logger.debug(f"Created bridge row {row_id} ({parent_id} -> {tag_id})")
        return row_id

    async def delete_bridge_row(self, row_id: str) -> None:
        if self.rows.pop(row_id, None) is None:
            logger.warning(f"Bridge row {row_id} was not present on delete")

    async def list_session_teams(self, user_id: str) -> list[Team]:
        return list(self.memberships.get(user_id, []))


# =============================================================================
# Instrumentation
# =============================================================================

class MeteredRelationStore(RelationStore):
    """Wraps a store and records latency and error codes per operation."""

    def __init__(self, inner: RelationStore, metrics: MetricsStore | None = None):
        self.inner = inner
        self.metrics = metrics or get_metrics_store()

    async def _call(self, operation: str, awaitable):
        started = time.perf_counter()
        try:
            return await awaitable
        except EscalationException as e:
            self.metrics.record_operation_error(operation, e.code)
            raise
        finally:
            self.metrics.record_operation_latency(operation, (time.perf_counter() - started) * 1000)

    async def list_bridge_rows(self, parent_id: str) -> list[BridgeRow]:
        return await self._call("list_bridge_rows", self.inner.list_bridge_rows(parent_id))

    async def list_tags(self) -> list[Tag]:
        return await self._call("list_tags", self.inner.list_tags())

    async def resolve_tag(self, tag_id: str) -> Tag:
        return await self._call("resolve_tag", self.inner.resolve_tag(tag_id))

    async def create_bridge_row(
        self,
        parent_id: str,
        tag_id: str,
        created_by: str,
        label: str | None = None,
    ) -> str:
        return await self._call(
            "create_bridge_row",
            self.inner.create_bridge_row(parent_id, tag_id, created_by, label),
        )

    async def delete_bridge_row(self, row_id: str) -> None:
        return await self._call("delete_bridge_row", self.inner.delete_bridge_row(row_id))

    async def list_session_teams(self, user_id: str) -> list[Team]:
        return await self._call("list_session_teams", self.inner.list_session_teams(user_id))
