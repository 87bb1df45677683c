"""
Escalation Causes - Reconciliation Engine.

Turns the picker's complete desired selection into the minimal set of bridge
row creates/deletes, runs them concurrently, and folds each result back into
the selection state independently:

- one failed add or remove never blocks its siblings
- a cause with an add or delete in flight is never submitted twice
- completions for a case that has since been replaced are discarded; a
  reload of the same case receives them instead
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Iterable

from escalation.config import CausesSettings, get_settings
from escalation.exceptions import InvalidReference, StoreReadFailure, StoreWriteFailure
from escalation.observability import MetricsStore, get_metrics_store
from .schemas import ItemOutcome, OutcomeAction, ReconcileResult, SelectionEntry, Tag
from .state import SelectionState, load_selection_state
from .store import RelationStore

logger = logging.getLogger(__name__)

SelectionListener = Callable[[list[SelectionEntry]], Any]

# (tag_id, action, pending operation)
_Operation = tuple[str, OutcomeAction, Awaitable[ItemOutcome]]


def _audit(action: str, case_id: str, tag_id: str, user_id: str, details: dict | None = None):
    """Log an audit entry."""
    logger.info(f"[AUDIT] {action} case {case_id} cause {tag_id} by {user_id} {details or {}}")


def _skipped(tag_id: str, action: OutcomeAction, code: str, message: str) -> ItemOutcome:
    return ItemOutcome(tag_id=tag_id, action=action, status="skipped", code=code, message=message)


class ReconciliationEngine:
    """
    Owns the selection state of one picker and keeps it in step with the store.

    The engine is bound to a session user; `load` binds it to a case. Loading
    another case replaces the state, which turns every operation still in
    flight for the previous case into a stale completion. In-flight markers
    are keyed by (case, cause) and live on the engine, so a reload of the
    same case still sees them.
    """

    def __init__(
        self,
        store: RelationStore,
        user_id: str,
        *,
        settings: CausesSettings | None = None,
        on_selection_change: SelectionListener | None = None,
        metrics: MetricsStore | None = None,
    ):
        self.store = store
        self.user_id = user_id
        self.settings = settings or get_settings().causes
        self.on_selection_change = on_selection_change
        self.metrics = metrics or get_metrics_store()
        self._state: SelectionState | None = None
        self._load_token: object | None = None
        self._adds_in_flight: set[tuple[str, str]] = set()
        self._removes_in_flight: set[tuple[str, str]] = set()

    # -------------------------------------------------------------------------
    # State access
    # -------------------------------------------------------------------------

    @property
    def state(self) -> SelectionState | None:
        return self._state

    @property
    def parent_id(self) -> str | None:
        return self._state.parent_id if self._state else None

    @property
    def busy(self) -> bool:
        """True while any cause has an add or delete in flight."""
        return bool(self._adds_in_flight or self._removes_in_flight)

    def current_selection(self) -> list[SelectionEntry]:
        return self._state.selection() if self._state else []

    def current_available_options(self) -> list[SelectionEntry]:
        return self._state.available_entries() if self._state else []

    def suggest(self, filter_text: str | None, show_all: bool = False) -> list[SelectionEntry]:
        """Type-ahead over available causes; empty text lists all only on request."""
        options = self.current_available_options()
        text = (filter_text or "").strip().casefold()
        if text:
            return [o for o in options if text in o.label.casefold()]
        return options if show_all else []

    def snapshot(self, outcomes: list[ItemOutcome] | None = None) -> ReconcileResult:
        state = self._require_state()
        return self._result(state, outcomes or [])

    def _require_state(self) -> SelectionState:
        if self._state is None:
            raise RuntimeError("Picker has no case loaded")
        return self._state

    def _target(self, state: SelectionState) -> SelectionState | None:
        """State a completion for `state` lands in: itself or a reload of its case."""
        current = self._state
        if current is state or (current is not None and current.parent_id == state.parent_id):
            return current
        return None

    def _adds_pending(self, parent_id: str) -> int:
        return sum(1 for pid, _ in self._adds_in_flight if pid == parent_id)

    # -------------------------------------------------------------------------
    # Load
    # -------------------------------------------------------------------------

    async def load(self, parent_id: str) -> ReconcileResult:
        """
        Rebuild the state for a case from the store.

        On a read failure the previous state is kept untouched and the
        failure propagates. If another load starts before this one finishes,
        this result is returned as stale and not installed.
        """
        token = object()
        self._load_token = token
        try:
            state, outcomes = await load_selection_state(
                self.store,
                parent_id,
                self.user_id,
                policy=self.settings.ownership_policy,
                default_owner_label=self.settings.default_owner_label,
                repair=self.settings.repair_orphans_on_load,
            )
        except StoreReadFailure as e:
            logger.error(f"Failed to load causes for case {parent_id}: {e.message}")
            raise

        # Causes still being attached are not offerable yet
        for pid, tag_id in self._adds_in_flight:
            if pid == parent_id:
                state.take_available(tag_id)

        for outcome in outcomes:
            self.metrics.record_outcome(outcome.action, outcome.status)

        if self._load_token is not token:
            logger.info(f"Discarding superseded load for case {parent_id}")
            return self._result(state, outcomes, stale=True)

        self._state = state
        return self._result(state, outcomes)

    # -------------------------------------------------------------------------
    # Reconcile
    # -------------------------------------------------------------------------

    async def reconcile(self, desired_tag_ids: Iterable[str]) -> ReconcileResult:
        """Apply a complete desired selection and wait for every operation to settle."""
        return await self.dispatch(desired_tag_ids)

    def dispatch(self, desired_tag_ids: Iterable[str]) -> "asyncio.Task[ReconcileResult]":
        """
        Start applying a desired selection and return without waiting.

        All guards run and all in-flight markers are taken before this
        returns, so a later call sees them even if no operation has
        completed yet.
        """
        state = self._require_state()
        desired = list(dict.fromkeys(desired_tag_ids))
        desired_set = set(desired)
        current = state.selected_ids()

        outcomes: list[ItemOutcome] = []
        operations: list[_Operation] = []

        # Removes start first so adds waiting on a freed slot can follow them
        freeing: list[asyncio.Task] = []
        for entry in state.entries():
            if entry.tag_id in desired_set:
                continue
            operation = self._begin_remove(state, entry, outcomes)
            if operation is not None:
                task = asyncio.create_task(operation)
                freeing.append(task)
                operations.append((entry.tag_id, "remove", task))

        for tag_id in desired:
            if tag_id in current:
                continue
            operation = self._begin_add(state, tag_id, freeing, outcomes)
            if operation is not None:
                operations.append((tag_id, "add", operation))

        return asyncio.create_task(self._settle(state, operations, outcomes))

    def _begin_add(
        self,
        state: SelectionState,
        tag_id: str,
        freeing: list[asyncio.Task],
        outcomes: list[ItemOutcome],
    ) -> Awaitable[ItemOutcome] | None:
        key = (state.parent_id, tag_id)
        if key in self._adds_in_flight:
            outcomes.append(_skipped(tag_id, "add", "IN_FLIGHT", "add already in progress"))
            return None

        existing = state.selected.get(tag_id)
        if existing is not None and existing.bridge_row_id:
            outcomes.append(_skipped(tag_id, "add", "DUPLICATE", "cause already attached"))
            return None

        # Pending removes still hold their slot until they succeed
        limit = self.settings.selection_limit
        deferred = False
        if limit:
            occupied = len(state.selected) + self._adds_pending(state.parent_id)
            if occupied - len(freeing) >= limit:
                outcomes.append(_skipped(tag_id, "add", "SELECTION_LIMIT", f"at most {limit} causes per case"))
                return None
            deferred = occupied >= limit

        tag = state.take_available(tag_id)
        if tag is None:
            logger.debug(f"Cause {tag_id} is not offerable for case {state.parent_id}; ignoring add")
            outcomes.append(_skipped(tag_id, "add", "NOT_AVAILABLE", "cause is not offerable"))
            return None

        self._adds_in_flight.add(key)
        if deferred:
            return self._add_after_removes(state, tag, freeing)
        return self._apply_add(state, tag)

    def _begin_remove(
        self,
        state: SelectionState,
        entry: SelectionEntry,
        outcomes: list[ItemOutcome],
    ) -> Awaitable[ItemOutcome] | None:
        key = (state.parent_id, entry.tag_id)
        if key in self._removes_in_flight:
            outcomes.append(_skipped(entry.tag_id, "remove", "IN_FLIGHT", "remove already in progress"))
            return None

        if not entry.bridge_row_id:
            error = InvalidReference(entry.tag_id)
            logger.warning(f"{error.message}; removing it locally only")
            state.drop_entry(entry.tag_id)
            if entry.visible:
                state.restore_available(entry.tag_id)
            outcomes.append(ItemOutcome(
                tag_id=entry.tag_id,
                action="remove",
                status="succeeded",
                code=error.code,
                message=error.message,
            ))
            return None

        self._removes_in_flight.add(key)
        return self._apply_remove(state, entry)

    async def _add_after_removes(
        self,
        state: SelectionState,
        tag: Tag,
        freeing: list[asyncio.Task],
    ) -> ItemOutcome:
        """Hold an add that only fits once sibling removes have freed their slots."""
        await asyncio.gather(*freeing, return_exceptions=True)

        target = self._target(state) or state
        limit = self.settings.selection_limit
        # This add is itself counted among the pending ones
        if len(target.selected) + self._adds_pending(state.parent_id) - 1 >= limit:
            self._adds_in_flight.discard((state.parent_id, tag.id))
            target.restore_available(tag.id)
            logger.info(f"Add of cause {tag.id} to case {state.parent_id} dropped: a sibling remove failed")
            return _skipped(tag.id, "add", "SELECTION_LIMIT", f"at most {limit} causes per case")

        return await self._apply_add(state, tag)

    async def _apply_add(self, state: SelectionState, tag: Tag) -> ItemOutcome:
        row_id = None
        try:
            row_id = await self.store.create_bridge_row(state.parent_id, tag.id, self.user_id, tag.label)
            if not row_id:
                raise StoreWriteFailure("create_bridge_row", "store returned no row id", tag_id=tag.id)
        except StoreWriteFailure as e:
            logger.warning(f"Failed to add cause {tag.id} to case {state.parent_id}: {e.message}")
            return ItemOutcome(tag_id=tag.id, action="add", status="failed", code=e.code, message=e.message)
        finally:
            self._adds_in_flight.discard((state.parent_id, tag.id))
            if not row_id:
                (self._target(state) or state).restore_available(tag.id)

        target = self._target(state)
        if target is None:
            logger.info(f"Discarding add of cause {tag.id} for superseded case {state.parent_id}")
            return ItemOutcome(tag_id=tag.id, action="add", status="succeeded", bridge_row_id=row_id)

        # A reload may already have read the new row
        if tag.id not in target.selected:
            target.add_entry(SelectionEntry(
                tag_id=tag.id,
                label=tag.label,
                bridge_row_id=row_id,
                owner=target.owner_label(tag),
                visible=True,
            ))
        _audit("add", state.parent_id, tag.id, self.user_id, {"row_id": row_id, "label": tag.label})
        return ItemOutcome(tag_id=tag.id, action="add", status="succeeded", bridge_row_id=row_id)

    async def _apply_remove(self, state: SelectionState, entry: SelectionEntry) -> ItemOutcome:
        try:
            await self.store.delete_bridge_row(entry.bridge_row_id)
        except StoreWriteFailure as e:
            logger.warning(f"Failed to remove cause {entry.tag_id} from case {state.parent_id}: {e.message}")
            return ItemOutcome(
                tag_id=entry.tag_id,
                action="remove",
                status="failed",
                code=e.code,
                message=e.message,
                bridge_row_id=entry.bridge_row_id,
            )
        finally:
            self._removes_in_flight.discard((state.parent_id, entry.tag_id))

        target = self._target(state)
        if target is None:
            logger.info(f"Discarding remove of cause {entry.tag_id} for superseded case {state.parent_id}")
        else:
            held = target.selected.get(entry.tag_id)
            if held is not None and held.bridge_row_id == entry.bridge_row_id:
                target.drop_entry(entry.tag_id)
                if entry.visible:
                    target.restore_available(entry.tag_id)
            _audit("remove", state.parent_id, entry.tag_id, self.user_id, {"row_id": entry.bridge_row_id})

        return ItemOutcome(
            tag_id=entry.tag_id,
            action="remove",
            status="succeeded",
            bridge_row_id=entry.bridge_row_id,
        )

    async def _settle(
        self,
        state: SelectionState,
        operations: list[_Operation],
        outcomes: list[ItemOutcome],
    ) -> ReconcileResult:
        if operations:
            results = await asyncio.gather(*(op for _, _, op in operations), return_exceptions=True)
            for (tag_id, action, _), result in zip(operations, results):
                if isinstance(result, ItemOutcome):
                    outcomes.append(result)
                    continue
                if not isinstance(result, Exception):
                    raise result
                logger.error(
                    f"Unexpected error during {action} of cause {tag_id} on case {state.parent_id}",
                    exc_info=result,
                )
                self.metrics.record_error("INTERNAL_ERROR")
                outcomes.append(ItemOutcome(
                    tag_id=tag_id,
                    action=action,
                    status="failed",
                    code="INTERNAL_ERROR",
                    message=str(result),
                ))

        for outcome in outcomes:
            self.metrics.record_outcome(outcome.action, outcome.status)

        target = self._target(state)
        if target is None:
            return self._result(state, outcomes, stale=True)
        result = self._result(target, outcomes)
        await self._emit(result.selection)
        return result

    async def _emit(self, entries: list[SelectionEntry]) -> None:
        if self.on_selection_change is None:
            return
        notified = self.on_selection_change(entries)
        if inspect.isawaitable(notified):
            await notified

    def _result(
        self,
        state: SelectionState,
        outcomes: list[ItemOutcome],
        stale: bool = False,
    ) -> ReconcileResult:
        return ReconcileResult(
            parent_id=state.parent_id,
            selection=state.selection(),
            available=state.available_entries(),
            outcomes=outcomes,
            stale=stale,
        )
