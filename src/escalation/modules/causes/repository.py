"""
Escalation Causes - Repository.

Supabase-backed relation store. Raw rows are validated and turned into
typed records here; nothing past this module sees store-shaped dicts.
"""

import logging
from typing import Any

from supabase import Client

from escalation.config import CausesSettings, get_settings
from escalation.core.repository import BaseRepository
from escalation.exceptions import StoreReadFailure, StoreWriteFailure, TagNotFound
from .schemas import BridgeRow, Tag, Team
from .store import RelationStore, normalize_id

logger = logging.getLogger(__name__)


class CausesRepository(BaseRepository[dict[str, Any]]):
    """Escalation causes: id, name, owner_id, owner_name."""

    def __init__(self, table_name: str, client: Client | None = None):
        super().__init__(client)
        self._table_name = table_name

    @property
    def table_name(self) -> str:
        return self._table_name

    async def list_all(self) -> list[dict[str, Any]]:
        return await self.list_where({}, columns="id, name, owner_id, owner_name")


class BridgeRepository(BaseRepository[dict[str, Any]]):
    """Case-to-cause bridge rows: id, case_id, cause_id, owner_id, name."""

    def __init__(self, table_name: str, client: Client | None = None):
        super().__init__(client)
        self._table_name = table_name

    @property
    def table_name(self) -> str:
        return self._table_name

    async def list_by_case(self, case_id: str) -> list[dict[str, Any]]:
        return await self.list_where({"case_id": case_id}, columns="id, case_id, cause_id, owner_id")


class MembershipsRepository(BaseRepository[dict[str, Any]]):
    """User-to-team memberships, with the team name embedded."""

    def __init__(self, table_name: str, client: Client | None = None):
        super().__init__(client)
        self._table_name = table_name

    @property
    def table_name(self) -> str:
        return self._table_name

    async def list_for_user(self, user_id: str) -> list[dict[str, Any]]:
        return await self.list_where({"user_id": user_id}, columns="team_id, teams(name)")


# =============================================================================
# Row -> record transforms
# =============================================================================

def _tag_from_row(row: dict[str, Any]) -> Tag:
    return Tag(
        id=normalize_id(row["id"]),
        label=row.get("name") or "",
        owner_id=normalize_id(row.get("owner_id")) or None,
        owner_name=row.get("owner_name"),
    )


def _bridge_from_row(row: dict[str, Any]) -> BridgeRow:
    return BridgeRow(
        row_id=normalize_id(row["id"]),
        parent_id=normalize_id(row["case_id"]),
        tag_id=normalize_id(row["cause_id"]),
        created_by=normalize_id(row.get("owner_id")) or None,
    )


def _team_from_row(row: dict[str, Any]) -> Team:
    embedded = row.get("teams")
    name = embedded.get("name") if isinstance(embedded, dict) else None
    return Team(team_id=normalize_id(row["team_id"]), team_name=name)


# =============================================================================
# Store adapter
# =============================================================================

class SupabaseRelationStore(RelationStore):
    """RelationStore over three Supabase tables."""

    def __init__(self, client: Client | None = None, settings: CausesSettings | None = None):
        settings = settings or get_settings().causes
        self.causes = CausesRepository(settings.tags_table, client)
        self.bridge = BridgeRepository(settings.bridge_table, client)
        self.memberships = MembershipsRepository(settings.memberships_table, client)

    async def list_bridge_rows(self, parent_id: str) -> list[BridgeRow]:
        try:
            rows = await self.bridge.list_by_case(normalize_id(parent_id))
            return [_bridge_from_row(r) for r in rows]
        except (KeyError, ValueError) as e:
            raise StoreReadFailure("list_bridge_rows", f"malformed row: {e}") from e
        except Exception as e:
            raise StoreReadFailure("list_bridge_rows", str(e)) from e

    async def list_tags(self) -> list[Tag]:
        try:
            rows = await self.causes.list_all()
            return [_tag_from_row(r) for r in rows]
        except (KeyError, ValueError) as e:
            raise StoreReadFailure("list_tags", f"malformed row: {e}") from e
        except Exception as e:
            raise StoreReadFailure("list_tags", str(e)) from e

    async def resolve_tag(self, tag_id: str) -> Tag:
        try:
            row = await self.causes.get_by_id(normalize_id(tag_id))
        except Exception as e:
            raise StoreReadFailure("resolve_tag", str(e)) from e
        if not row or not row.get("name"):
            raise TagNotFound(tag_id)
        return _tag_from_row(row)

    async def create_bridge_row(
        self,
        parent_id: str,
        tag_id: str,
        created_by: str,
        label: str | None = None,
    ) -> str:
        data: dict[str, Any] = {
            "case_id": normalize_id(parent_id),
            "cause_id": normalize_id(tag_id),
            "owner_id": normalize_id(created_by),
        }
        if label:
            data["name"] = label
        try:
            created = await self.bridge.create(data)
        except Exception as e:
            raise StoreWriteFailure("create_bridge_row", str(e), tag_id=tag_id) from e

        row_id = normalize_id(created.get("id"))
        if not row_id:
            raise StoreWriteFailure("create_bridge_row", "store returned no row id", tag_id=tag_id)
        logger.info(f"Bridge row created: {row_id}")
        return row_id

    async def delete_bridge_row(self, row_id: str) -> None:
        try:
            deleted = await self.bridge.delete(normalize_id(row_id))
        except Exception as e:
            raise StoreWriteFailure("delete_bridge_row", str(e)) from e
        if not deleted:
            # Already gone counts as detached
            logger.warning(f"Bridge row {row_id} was not present on delete")
        logger.info(f"Bridge row removed: {row_id}")

    async def list_session_teams(self, user_id: str) -> list[Team]:
        try:
            rows = await self.memberships.list_for_user(normalize_id(user_id))
            return [_team_from_row(r) for r in rows]
        except (KeyError, ValueError) as e:
            raise StoreReadFailure("list_session_teams", f"malformed row: {e}") from e
        except Exception as e:
            raise StoreReadFailure("list_session_teams", str(e)) from e
