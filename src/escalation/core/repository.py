"""
Escalation Core - Base Repository.

Abstract base class for all repositories following the repository pattern.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar

from supabase import Client

from escalation.core.supabase_client import get_supabase_client

T = TypeVar("T")


class BaseRepository(ABC, Generic[T]):
    """
    Abstract base repository for database operations.

    The supabase client is blocking; every query is executed in a worker
    thread so concurrent callers do not serialize on the event loop.
    """

    def __init__(self, client: Client | None = None):
        """Initialize repository with optional Supabase client."""
        self._client = client or get_supabase_client()

    @property
    @abstractmethod
    def table_name(self) -> str:
        """Return the table name for this repository."""
        ...

    @property
    def table(self):
        """Get the Supabase table reference."""
        return self._client.table(self.table_name)

    async def _execute(self, query) -> Any:
        return await asyncio.to_thread(query.execute)

    async def get_by_id(self, id: str) -> T | None:
        """
        Get a single record by ID.

        Args:
            id: The record id

        Returns:
            The record if found, None otherwise
        """
        response = await self._execute(self.table.select("*").eq("id", id).limit(1))
        if response.data:
            return response.data[0]
        return None

    async def list_where(self, filters: dict[str, Any], columns: str = "*") -> list[T]:
        """
        List all records matching equality filters.

        Args:
            filters: Column -> value equality filters
            columns: Select expression

        Returns:
            Matching records (possibly empty)
        """
        query = self.table.select(columns)
        for key, value in filters.items():
            query = query.eq(key, value)
        response = await self._execute(query)
        return response.data or []

    async def create(self, data: dict[str, Any]) -> T:
        """
        Create a new record.

        Args:
            data: The record data

        Returns:
            The created record
        """
        response = await self._execute(self.table.insert(data))
        if not response.data:
            raise RuntimeError(f"Insert into {self.table_name} returned no rows")
        return response.data[0]

    async def delete(self, id: str) -> bool:
        """
        Delete a record by ID.

        Returns:
            True if a row was deleted
        """
        response = await self._execute(self.table.delete().eq("id", id))
        return bool(response.data)
