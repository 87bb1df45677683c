"""
Escalation Causes - Selection State.

The in-memory picker model for one case: selected chips linked to their
bridge rows, causes still offerable, and the catalog used to re-offer them.
A state is built from scratch by `load_selection_state` and mutated only by
the reconciliation engine that owns it.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from .orphans import repair_orphans
from .ownership import OwnershipPolicy, compute_visible_tags, owner_labels, session_principals
from .schemas import BridgeRow, ItemOutcome, SelectionEntry, Tag
from .store import RelationStore

logger = logging.getLogger(__name__)

DEFAULT_OWNER_LABEL = "No Owner Assigned"


def _label_key(tag: Tag) -> tuple[str, str]:
    return (tag.label.casefold(), tag.id)


@dataclass
class SelectionState:
    """Selected entries and available options for one case."""

    parent_id: str
    # tag_id -> entry, in the order chips were added
    selected: dict[str, SelectionEntry] = field(default_factory=dict)
    # tag_id -> tag, offerable and not selected
    available: dict[str, Tag] = field(default_factory=dict)
    # Every cause visible to the session; the only source for re-offering
    catalog: dict[str, Tag] = field(default_factory=dict)
    owner_names: dict[str, str] = field(default_factory=dict)
    default_owner_label: str = DEFAULT_OWNER_LABEL

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def selected_ids(self) -> set[str]:
        return set(self.selected)

    def entries(self) -> list[SelectionEntry]:
        return list(self.selected.values())

    def owner_label(self, tag: Tag) -> str:
        if tag.owner_name:
            return tag.owner_name
        return self.owner_names.get(tag.owner_id or "", self.default_owner_label)

    def selection(self) -> list[SelectionEntry]:
        """Selected entries as copies, safe to hand out."""
        return [entry.model_copy() for entry in self.selected.values()]

    def available_entries(self) -> list[SelectionEntry]:
        """Offerable causes sorted by label."""
        return [
            SelectionEntry(tag_id=tag.id, label=tag.label, owner=self.owner_label(tag))
            for tag in sorted(self.available.values(), key=_label_key)
        ]

    def invariant_violations(self) -> list[str]:
        """Describe every broken state invariant (empty when consistent)."""
        problems = []
        overlap = self.selected.keys() & self.available.keys()
        if overlap:
            problems.append(f"selected and available overlap: {sorted(overlap)}")
        for tag_id, entry in self.selected.items():
            if entry.tag_id != tag_id:
                problems.append(f"entry keyed {tag_id} carries tag {entry.tag_id}")
            if entry.bridge_row_id is None and not entry.visible:
                problems.append(f"foreign entry {tag_id} has no bridge row")
        return problems

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def add_entry(self, entry: SelectionEntry) -> None:
        self.selected[entry.tag_id] = entry
        self.available.pop(entry.tag_id, None)

    def drop_entry(self, tag_id: str) -> SelectionEntry | None:
        return self.selected.pop(tag_id, None)

    def take_available(self, tag_id: str) -> Tag | None:
        """Withdraw a cause from the offerable set."""
        return self.available.pop(tag_id, None)

    def restore_available(self, tag_id: str) -> bool:
        """Offer a visible cause again. Foreign causes are never in the catalog."""
        tag = self.catalog.get(tag_id)
        if tag is None or tag_id in self.selected:
            return False
        self.available[tag_id] = tag
        return True


# =============================================================================
# Load
# =============================================================================

async def load_selection_state(
    store: RelationStore,
    parent_id: str,
    user_id: str,
    *,
    policy: OwnershipPolicy = "team",
    default_owner_label: str = DEFAULT_OWNER_LABEL,
    repair: bool = True,
) -> tuple[SelectionState, list[ItemOutcome]]:
    """
    Build the picker state for a case.

    Args:
        store: Relation store to read from
        parent_id: Case id
        user_id: Session user, used for team membership and ownership
        policy: Ownership policy deciding which causes are visible
        default_owner_label: Owner label when no name resolves
        repair: Delete orphaned bridge rows found while loading

    Returns:
        Tuple of (state, repair outcomes)

    Raises:
        StoreReadFailure: If any read fails. Nothing is returned in that case.
    """
    rows, all_tags, teams = await asyncio.gather(
        store.list_bridge_rows(parent_id),
        store.list_tags(),
        store.list_session_teams(user_id),
    )

    principals = session_principals(user_id, teams, policy)
    visible = {tag.id: tag for tag in compute_visible_tags(all_tags, principals)}

    state = SelectionState(
        parent_id=parent_id,
        catalog=visible,
        owner_names=owner_labels(teams),
        default_owner_label=default_owner_label,
    )

    kept: list[BridgeRow] = []
    seen: set[str] = set()
    for row in rows:
        if row.tag_id in seen:
            logger.warning(
                f"Case {parent_id} has a duplicate bridge row {row.row_id} for cause {row.tag_id}; ignoring it"
            )
            continue
        seen.add(row.tag_id)
        kept.append(row)

    owned = [row for row in kept if row.tag_id in visible]
    foreign = [row for row in kept if row.tag_id not in visible]

    # Foreign causes are looked up directly; the ones that do not resolve are orphans
    report = await repair_orphans(store, foreign, delete=repair)
    resolved = {tag.id: tag for tag in report.resolved}

    # Chips keep the store's row order
    for row in kept:
        tag = visible.get(row.tag_id) or resolved.get(row.tag_id)
        if tag is None:
            continue
        state.add_entry(SelectionEntry(
            tag_id=tag.id,
            label=tag.label,
            bridge_row_id=row.row_id,
            owner=state.owner_label(tag),
            visible=row.tag_id in visible,
        ))

    state.available = {
        tag.id: tag
        for tag in sorted(visible.values(), key=_label_key)
        if tag.id not in state.selected
    }

    logger.info(
        f"Loaded case {parent_id}: {len(owned)} owned, {len(report.resolved)} foreign, "
        f"{len(report.orphaned_row_ids)} orphaned, {len(state.available)} available"
    )
    return state, report.outcomes
