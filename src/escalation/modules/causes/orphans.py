"""
Escalation Causes - Orphan Repair.

Bridge rows that point at a cause which no longer exists are deleted from
the store and never shown. Repair is best effort: a failed delete is logged
and the row stays excluded from the selection until a later load retries.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from escalation.exceptions import StoreWriteFailure, TagNotFound
from .schemas import BridgeRow, ItemOutcome, Tag
from .store import RelationStore

logger = logging.getLogger(__name__)


@dataclass
class OrphanRepairReport:
    """What a repair pass resolved, found orphaned, and actually deleted."""

    resolved: list[Tag] = field(default_factory=list)
    orphaned_row_ids: list[str] = field(default_factory=list)
    removed_row_ids: list[str] = field(default_factory=list)
    outcomes: list[ItemOutcome] = field(default_factory=list)


async def _resolve(store: RelationStore, row: BridgeRow) -> Tag | None:
    try:
        return await store.resolve_tag(row.tag_id)
    except TagNotFound:
        return None


async def _delete_orphan(store: RelationStore, row: BridgeRow) -> ItemOutcome:
    try:
        await store.delete_bridge_row(row.row_id)
    except StoreWriteFailure as e:
        logger.warning(f"Orphan repair could not delete bridge row {row.row_id}: {e.message}")
        return ItemOutcome(
            tag_id=row.tag_id,
            action="repair",
            status="failed",
            code=e.code,
            message=e.message,
            bridge_row_id=row.row_id,
        )
    logger.info(f"[AUDIT] repair case {row.parent_id}: removed orphan row {row.row_id} (cause {row.tag_id})")
    return ItemOutcome(
        tag_id=row.tag_id,
        action="repair",
        status="succeeded",
        code="TAG_NOT_FOUND",
        bridge_row_id=row.row_id,
    )


async def repair_orphans(
    store: RelationStore,
    rows: list[BridgeRow],
    *,
    delete: bool = True,
) -> OrphanRepairReport:
    """
    Resolve each row's cause directly; delete rows whose cause is gone.

    Raises:
        StoreReadFailure: If a lookup fails for a reason other than not found.
    """
    report = OrphanRepairReport()
    if not rows:
        return report

    tags = await asyncio.gather(*(_resolve(store, row) for row in rows))

    orphans = []
    for row, tag in zip(rows, tags):
        if tag is None:
            orphans.append(row)
        else:
            report.resolved.append(tag)
    report.orphaned_row_ids = [row.row_id for row in orphans]

    if not orphans:
        return report

    if not delete:
        for row in orphans:
            logger.warning(f"Bridge row {row.row_id} references missing cause {row.tag_id}; repair disabled")
            report.outcomes.append(ItemOutcome(
                tag_id=row.tag_id,
                action="repair",
                status="skipped",
                code="REPAIR_DISABLED",
                bridge_row_id=row.row_id,
            ))
        return report

    outcomes = await asyncio.gather(*(_delete_orphan(store, row) for row in orphans))
    report.outcomes.extend(outcomes)
    report.removed_row_ids = [o.bridge_row_id for o in outcomes if o.status == "succeeded"]
    return report
