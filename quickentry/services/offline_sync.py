"""
Offline sync monitor.

Tracks connectivity and drains the offline mutation queue when the backend
becomes reachable again.

Drain protocol:
1. Runs only while online, as a background task; never two passes at once
2. Entries are replayed one at a time in enqueue order (a queued account
   creation must land before a transaction that references it)
3. Success removes the entry; failure calls increment_retry, and an entry
   that exhausts its budget is reported through on_diagnostic
4. A connectivity failure during replay marks the monitor offline and ends
   the pass, leaving later entries untouched

Connectivity comes from two sources: transitions reported by the client
(set_online) and a periodic liveness poll that runs the reachability probe,
in case a transition event was missed. Starting the poll first drains any
entries left pending by a previous process.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set

import httpx

from quickentry.config import settings
from quickentry.schemas.offline_queue import NetworkStatus, SyncReport
from quickentry.services.offline_queue import OfflineMutationQueue
from quickentry.utils.constants import DEFAULT_MAX_RETRIES
from quickentry.utils.errors import RemoteUnavailable

logger = logging.getLogger(__name__)

MutationExecutor = Callable[[str, Dict[str, Any]], Awaitable[Any]]
ReachabilityProbe = Callable[[], Awaitable[bool]]


async def probe_supabase(timeout: float = 2.0) -> bool:
    """
    Check whether the Supabase REST endpoint answers at all.

    Any HTTP response counts as reachable; only transport failures
    (DNS, refused connection, timeout) count as offline.
    """
    if not settings.SUPABASE_URL:
        return False
    url = f"{settings.SUPABASE_URL.rstrip('/')}/rest/v1/"
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            await client.head(url, headers={"apikey": settings.SUPABASE_PUBLISHABLE_KEY})
    except httpx.TransportError:
        return False
    return True


class OfflineSyncMonitor:
    """Connectivity tracking plus sequential replay of queued mutations."""

    def __init__(
        self,
        queue: OfflineMutationQueue,
        executor: MutationExecutor,
        probe: Optional[ReachabilityProbe] = None,
        auto_sync: bool = True,
        check_interval: float = 1.0,
        max_retries: int = DEFAULT_MAX_RETRIES,
        is_online: bool = True,
        on_status_change: Optional[Callable[[NetworkStatus], None]] = None,
        on_diagnostic: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.queue = queue
        self.executor = executor
        self.probe = probe or probe_supabase
        self.auto_sync = auto_sync
        self.check_interval = check_interval
        self.max_retries = max_retries
        self.on_status_change = on_status_change
        self.on_diagnostic = on_diagnostic

        self._is_online = is_online
        self._queue_size = 0
        self._drain_lock = asyncio.Lock()
        self._poll_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()

    @property
    def status(self) -> NetworkStatus:
        return NetworkStatus(is_online=self._is_online, queue_size=self._queue_size)

    @property
    def is_online(self) -> bool:
        return self._is_online

    async def refresh_queue_size(self) -> int:
        self._queue_size = await self.queue.size()
        self._emit_status()
        return self._queue_size

    # --- connectivity ---

    async def set_online(self, online: bool) -> None:
        """Apply a reported connectivity transition."""
        was_online = self._is_online
        self._is_online = online
        await self.refresh_queue_size()

        if online and not was_online:
            logger.info("Connectivity restored")
            if self.auto_sync:
                self._spawn(self.sync_queue())
        elif was_online and not online:
            logger.info("Connectivity lost, writes will be queued")

    async def check_network_status(self) -> NetworkStatus:
        """Liveness poll: reconcile reported connectivity with actual reachability."""
        try:
            reachable = await self.probe()
        except Exception as e:
            logger.warning(f"Reachability probe failed: {e}")
            reachable = False

        if reachable != self._is_online:
            logger.info(f"Liveness poll disagrees with reported state, now online={reachable}")
            await self.set_online(reachable)
        else:
            await self.refresh_queue_size()
        return self.status

    def start(self) -> None:
        """Start the periodic liveness poll (requires a running event loop)."""
        if self._poll_task is not None and not self._poll_task.done():
            return
        self._poll_task = asyncio.get_running_loop().create_task(self._poll())

    async def stop(self) -> None:
        tasks = [task for task in (self._poll_task, *self._background) if task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._poll_task = None
        self._background.clear()

    async def wait_idle(self) -> None:
        """Wait for background drains started by set_online()."""
        while True:
            pending = [task for task in self._background if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def _poll(self) -> None:
        await self._resume_pending()
        while True:
            await asyncio.sleep(self.check_interval)
            await self.check_network_status()

    async def _resume_pending(self) -> None:
        """Drain entries left over from a previous process once polling starts."""
        if await self.refresh_queue_size() == 0:
            return
        if self._is_online and self.auto_sync:
            logger.info(f"Resuming drain of {self._queue_size} pending entries")
            await self.sync_queue()

    # --- drain ---

    async def sync_queue(self) -> SyncReport:
        """
        Replay every queued mutation once, in enqueue order.

        Returns:
            What happened to each entry. Empty when offline or already draining.
        """
        report = SyncReport()
        if not self._is_online:
            return report
        if self._drain_lock.locked():
            logger.debug("Drain already running, skipping")
            return report

        async with self._drain_lock:
            entries = await self.queue.list_all()
            if entries:
                logger.info(f"Draining offline queue: {len(entries)} entries")

            for entry in entries:
                try:
                    await self.executor(entry.mutation, entry.variables)
                except RemoteUnavailable as e:
                    await self._record_failure(entry.id, entry.mutation, str(e), report)
                    report.interrupted = True
                    self._is_online = False
                    logger.info("Backend unreachable during drain, stopping pass")
                    break
                except Exception as e:
                    await self._record_failure(entry.id, entry.mutation, str(e), report)
                    continue

                await self.queue.remove(entry.id)
                report.replayed.append(entry.id)
                logger.info(f"Replayed queued mutation {entry.id} ({entry.mutation})")

        await self.refresh_queue_size()
        return report

    async def clear_queue(self) -> None:
        await self.queue.clear()
        await self.refresh_queue_size()

    async def _record_failure(
        self, mutation_id: str, mutation: str, error: str, report: SyncReport
    ) -> None:
        logger.warning(f"Replay of queued mutation {mutation_id} failed: {error}")
        should_retry = await self.queue.increment_retry(
            mutation_id, max_retries=self.max_retries, error=error
        )
        if should_retry:
            report.retried.append(mutation_id)
            return

        report.evicted.append(mutation_id)
        message = (
            f"Queued {mutation} {mutation_id} dropped after {self.max_retries} "
            f"failed attempts: {error}"
        )
        if self.on_diagnostic is not None:
            try:
                self.on_diagnostic(message)
            except Exception as e:
                logger.error(f"Diagnostic callback failed: {e}", exc_info=True)

    # --- helpers ---

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _emit_status(self) -> None:
        if self.on_status_change is None:
            return
        try:
            self.on_status_change(self.status)
        except Exception as e:
            logger.error(f"Status callback failed: {e}", exc_info=True)
