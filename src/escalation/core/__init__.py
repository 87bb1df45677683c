"""
Escalation Core - Supabase access shared by all modules.

Components:
- supabase_client: cached service-role client
- repository: base repository running queries off the event loop
"""

from escalation.core.repository import BaseRepository
from escalation.core.supabase_client import get_supabase_client

__all__ = [
    "BaseRepository",
    "get_supabase_client",
]
