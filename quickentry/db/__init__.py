"""
Data access layer for the quick-entry service.

Includes:
- Supabase client factory (remote ledger, RLS enforced)
- Durable key-value stores for the offline mutation queue
"""

from .client import get_supabase_client
from .queue_store import KeyValueStore, MemoryKeyValueStore, SqliteKeyValueStore

__all__ = [
    "get_supabase_client",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqliteKeyValueStore",
]
