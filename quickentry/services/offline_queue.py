"""
Offline mutation queue.

Buffers writes that could not reach the backend and keeps them in a durable
key-value store until the offline sync monitor replays them.

RULES:
1. The queue exclusively owns its entries; callers only get copies
2. Entries are listed oldest first (enqueue timestamp, then insertion order)
3. retry_count never reaches past max_retries: the call that gets there evicts
4. Storage failures never propagate: the queue logs a warning and behaves as
   empty (lossy, but a broken local store must not block quick entry)
5. At capacity the oldest entries are kept and new writes are rejected (QueueFull)
"""

import logging
import sqlite3
import time
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import ValidationError

from quickentry.db.queue_store import KeyValueStore
from quickentry.schemas.offline_queue import QueuedMutation
from quickentry.utils.constants import DEFAULT_MAX_RETRIES
from quickentry.utils.errors import QueueFull, StorageDegraded

logger = logging.getLogger(__name__)

_STORAGE_ERRORS = (StorageDegraded, sqlite3.Error, OSError)


def _now_ms() -> int:
    return int(time.time() * 1000)


class OfflineMutationQueue:
    """Durable, retry-bounded queue of pending mutations."""

    def __init__(self, store: KeyValueStore, max_size: int = 100) -> None:
        self.store = store
        self.max_size = max_size

    async def enqueue(self, mutation: str, variables: Dict[str, Any]) -> str:
        """
        Persist a new queued mutation.

        Args:
            mutation: Name of the remote operation (see MUTATION_NAMES)
            variables: JSON-serializable arguments for the operation

        Returns:
            The generated id. It is returned even when the store is degraded
            and nothing could be persisted.

        Raises:
            QueueFull: If max_size entries are already pending. Existing
                entries are kept and the new one is dropped.
        """
        entry = QueuedMutation(
            id=f"mutation_{_now_ms()}_{uuid4().hex[:8]}",
            mutation=mutation,
            variables=dict(variables),
            timestamp=_now_ms(),
        )

        try:
            existing = await self._load()
            if len(existing) >= self.max_size:
                logger.warning(
                    f"Offline queue full ({self.max_size}), dropping new {mutation} {entry.id}"
                )
                raise QueueFull(f"Offline queue is full ({self.max_size} pending)")

            await self.store.put(entry.id, entry.model_dump_json())
        except _STORAGE_ERRORS as e:
            logger.warning(f"Offline queue storage unavailable, mutation {entry.id} not persisted: {e}")
            return entry.id

        logger.info(f"Queued mutation {entry.id} ({mutation})")
        return entry.id

    async def list_all(self) -> List[QueuedMutation]:
        """Return every pending entry, oldest first. Empty when storage is degraded."""
        try:
            return await self._load()
        except _STORAGE_ERRORS as e:
            logger.warning(f"Offline queue storage unavailable, reporting empty queue: {e}")
            return []

    async def get(self, mutation_id: str) -> Optional[QueuedMutation]:
        try:
            raw = await self.store.get(mutation_id)
        except _STORAGE_ERRORS as e:
            logger.warning(f"Offline queue storage unavailable: {e}")
            return None
        return self._decode(mutation_id, raw) if raw is not None else None

    async def remove(self, mutation_id: str) -> None:
        try:
            await self.store.delete(mutation_id)
        except _STORAGE_ERRORS as e:
            logger.warning(f"Failed to remove queued mutation {mutation_id}: {e}")
            return
        logger.debug(f"Removed queued mutation {mutation_id}")

    async def increment_retry(
        self,
        mutation_id: str,
        max_retries: int = DEFAULT_MAX_RETRIES,
        error: Optional[str] = None,
    ) -> bool:
        """
        Record a failed replay attempt.

        Args:
            mutation_id: Entry that failed
            max_retries: Retry budget; the call that brings retry_count to
                this value evicts the entry
            error: Failure reason to store on the entry

        Returns:
            True if the entry should be retried later, False if it was
            evicted (or does not exist).
        """
        entry = await self.get(mutation_id)
        if entry is None:
            return False

        entry.retry_count += 1
        entry.error = error

        if entry.retry_count >= max_retries:
            logger.warning(
                f"Queued mutation {mutation_id} ({entry.mutation}) exhausted "
                f"{max_retries} retries, evicting"
            )
            await self.remove(mutation_id)
            return False

        try:
            await self.store.put(entry.id, entry.model_dump_json())
        except _STORAGE_ERRORS as e:
            logger.warning(f"Failed to persist retry count for {mutation_id}: {e}")
        return True

    async def size(self) -> int:
        return len(await self.list_all())

    async def clear(self) -> None:
        try:
            await self.store.clear()
        except _STORAGE_ERRORS as e:
            logger.warning(f"Failed to clear offline queue: {e}")
            return
        logger.info("Offline queue cleared")

    async def _load(self) -> List[QueuedMutation]:
        rows = await self.store.list()
        entries = []
        for key, raw in rows:
            entry = self._decode(key, raw)
            if entry is not None:
                entries.append(entry)
        # sorted() is stable, so equal timestamps keep insertion order
        return sorted(entries, key=lambda entry: entry.timestamp)

    def _decode(self, key: str, raw: str) -> Optional[QueuedMutation]:
        try:
            return QueuedMutation.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Skipping unreadable queued mutation {key}: {e.error_count()} errors")
            return None
