"""
Escalation Causes - Service

Hosts one picker per session user. Opening a different case in the same
session reloads that user's picker; operations still in flight for the
previous case complete against the store but no longer touch the picker.
"""

import asyncio
import inspect
import logging
from functools import partial
from typing import Any, Callable, List

from escalation.config import CausesSettings, get_settings
from escalation.exceptions import CaseChangedException, ValidationException
from escalation.observability import get_metrics_store
from .reconciler import ReconciliationEngine
from .repository import SupabaseRelationStore
from .schemas import ReconcileResult, SelectionEntry, SessionContext
from .store import InMemoryRelationStore, MeteredRelationStore, RelationStore, normalize_id

logger = logging.getLogger(__name__)

SelectionChangeHook = Callable[[str, List[SelectionEntry]], Any]


def _case_id(session: SessionContext) -> str:
    case_id = normalize_id(session.current_parent_id())
    if not case_id:
        raise ValidationException("Case id is required")
    return case_id


def build_relation_store(settings: CausesSettings) -> RelationStore:
    """Create the configured store, wrapped for metrics."""
    if settings.store_backend == "memory":
        inner: RelationStore = InMemoryRelationStore()
    else:
        inner = SupabaseRelationStore(settings=settings)
    return MeteredRelationStore(inner, get_metrics_store())


class CausesService:
    """
    Entry point for the HTTP surface.

    Pickers are keyed by user id: a user views one case at a time. Binding a
    picker to a case and starting a reconcile happen under that user's lock,
    so a desired selection is only ever applied to the case it was sent for.
    The response body of each call carries the settled selection; the
    optional `on_selection_change(user_id, entries)` hook hears the same
    selection for hosts that push it elsewhere.
    """

    def __init__(
        self,
        store: RelationStore | None = None,
        settings: CausesSettings | None = None,
        on_selection_change: SelectionChangeHook | None = None,
    ):
        self.settings = settings or get_settings().causes
        self.store = store or build_relation_store(self.settings)
        self.on_selection_change = on_selection_change
        self._pickers: dict[str, ReconciliationEngine] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def picker_for(self, user_id: str) -> ReconciliationEngine:
        """Get (or create) the picker owned by a session user."""
        user_id = normalize_id(user_id)
        picker = self._pickers.get(user_id)
        if picker is None:
            picker = ReconciliationEngine(
                self.store,
                user_id,
                settings=self.settings,
                on_selection_change=partial(self._selection_changed, user_id),
            )
            self._pickers[user_id] = picker
        return picker

    def close(self, user_id: str) -> None:
        """Drop a user's picker and its state."""
        self._pickers.pop(normalize_id(user_id), None)

    def _lock_for(self, picker: ReconciliationEngine) -> asyncio.Lock:
        lock = self._locks.get(picker.user_id)
        if lock is None:
            lock = self._locks[picker.user_id] = asyncio.Lock()
        return lock

    async def _selection_changed(self, user_id: str, entries: List[SelectionEntry]) -> None:
        logger.info(f"Selection for user {user_id} now {[e.tag_id for e in entries]}")
        if self.on_selection_change is None:
            return
        notified = self.on_selection_change(user_id, entries)
        if inspect.isawaitable(notified):
            await notified

    async def _bind(self, picker: ReconciliationEngine, case_id: str, reload: bool = False) -> ReconcileResult | None:
        """Load `case_id` into the picker unless it is already bound. Caller holds the lock."""
        if reload or picker.parent_id != case_id:
            logger.info(f"Loading case {case_id} for user {picker.user_id}")
            loaded = await picker.load(case_id)
            if loaded.stale or picker.parent_id != case_id:
                raise CaseChangedException(case_id)
            return loaded
        return None

    async def open_case(self, session: SessionContext, reload: bool = False) -> ReconcileResult:
        """Load the session's case into its picker (or reuse the loaded one)."""
        case_id = _case_id(session)
        picker = self.picker_for(session.current_user_id())
        async with self._lock_for(picker):
            loaded = await self._bind(picker, case_id, reload=reload)
            return loaded or picker.snapshot()

    async def update_selection(self, session: SessionContext, tag_ids: List[str]) -> ReconcileResult:
        """Reconcile the picker with the complete desired selection."""
        case_id = _case_id(session)
        picker = self.picker_for(session.current_user_id())
        async with self._lock_for(picker):
            loaded = await self._bind(picker, case_id)
            pending = picker.dispatch(normalize_id(t) for t in tag_ids)

        result = await pending
        if loaded is not None and loaded.outcomes:
            result.outcomes = loaded.outcomes + result.outcomes
        return result

    async def suggestions(
        self,
        session: SessionContext,
        query: str | None,
        show_all: bool = False,
    ) -> List[SelectionEntry]:
        """Available causes matching the typed text."""
        case_id = _case_id(session)
        picker = self.picker_for(session.current_user_id())
        async with self._lock_for(picker):
            await self._bind(picker, case_id)
            return picker.suggest(query, show_all=show_all)


# =============================================================================
# Singleton
# =============================================================================

_causes_service: CausesService | None = None


def get_causes_service() -> CausesService:
    """Get the causes service singleton."""
    global _causes_service
    if _causes_service is None:
        _causes_service = CausesService()
    return _causes_service
