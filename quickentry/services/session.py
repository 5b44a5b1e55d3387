"""
Quick-entry session: the calculator, usage inference and commit coordinator
wired together for one view.

Every calculator event recomputes the effective amount; when it changes it
is submitted to the inference debouncer, and inference results flow into the
coordinator's selection. The registry keeps sessions per user, plus one
offline queue and sync monitor per user.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional
from uuid import uuid4

from quickentry.config import settings
from quickentry.db.queue_store import SqliteKeyValueStore
from quickentry.schemas.ledger import TopUsedValue
from quickentry.schemas.quick_entry import (
    CalculatorView,
    CommitResult,
    FieldSelectionView,
    InferenceView,
    QuickEntrySessionResponse,
    SelectionView,
)
from quickentry.services.calculator import CalculatorMachine, handle_key
from quickentry.services.commit_coordinator import SelectionField, TransactionCommitCoordinator
from quickentry.services.inference_service import InferenceState, UsageInferenceDebouncer
from quickentry.services.offline_queue import OfflineMutationQueue
from quickentry.services.offline_sync import OfflineSyncMonitor, ReachabilityProbe
from quickentry.services.transaction_service import LedgerGateway

logger = logging.getLogger(__name__)


class QuickEntrySession:
    """Calculator quick entry for one view."""

    def __init__(
        self,
        gateway: LedgerGateway,
        queue: Optional[OfflineMutationQueue] = None,
        session_id: Optional[str] = None,
        debounce_seconds: float = settings.INFERENCE_DEBOUNCE_MS / 1000,
        lookback_days: int = settings.INFERENCE_LOOKBACK_DAYS,
        on_unreachable: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        self.session_id = session_id or uuid4().hex
        self.gateway = gateway
        self.lookback_days = lookback_days
        self.calculator = CalculatorMachine()
        self.coordinator = TransactionCommitCoordinator(
            gateway, self.calculator, queue=queue, on_unreachable=on_unreachable
        )
        self.inference = UsageInferenceDebouncer(
            self._lookup, lookback_days=lookback_days, debounce_seconds=debounce_seconds
        )
        self.inference.add_listener(self._on_inference)
        self.top_used_values: List[TopUsedValue] = []
        self._last_amount: Optional[float] = None

    def rebind(self, gateway: LedgerGateway) -> None:
        """Use a fresh gateway (e.g. a client built from a refreshed token)."""
        self.gateway = gateway
        self.coordinator.gateway = gateway

    async def load(self) -> bool:
        """Load entity lists (applying defaults) and the top-used amounts."""
        loaded = await self.coordinator.load_from_gateway()
        await self.load_top_used_values()
        return loaded

    async def load_top_used_values(self) -> List[TopUsedValue]:
        try:
            self.top_used_values = await self.gateway.list_top_used_values(self.lookback_days)
        except Exception as e:
            logger.warning(f"Failed to load top used values: {e}")
        return self.top_used_values

    # --- calculator events ---

    def enter_digit(self, digit: str) -> None:
        self.calculator.enter_digit(digit)
        self._amount_changed()

    def enter_operator(self, operation: str) -> bool:
        accepted = self.calculator.enter_operator(operation)
        self._amount_changed()
        return accepted

    def backspace(self) -> None:
        self.calculator.backspace()
        self._amount_changed()

    def equals(self) -> Optional[float]:
        result = self.calculator.equals()
        self._amount_changed()
        return result

    def set_value(self, value: float) -> None:
        self.calculator.set_from_external_value(value)
        self._amount_changed()

    def clear(self) -> None:
        self.calculator.reset()
        self._amount_changed()

    def handle_key(self, key: str) -> bool:
        consumed = handle_key(self.calculator, key)
        if consumed:
            self._amount_changed()
        return consumed

    @property
    def effective_amount(self) -> Optional[float]:
        return self.calculator.effective_amount()

    # --- selection & commit ---

    def select(self, field: SelectionField, entity_id: str) -> None:
        self.coordinator.select(field, entity_id)

    async def commit(self) -> CommitResult:
        """Commit the effective amount with the current selection."""
        amount = self.calculator.effective_amount()
        if amount is None:
            self.coordinator.error = "Enter an amount greater than zero"
            return CommitResult(status="invalid", message=self.coordinator.error)

        result = await self.coordinator.create_transaction(amount)
        if result.status in ("created", "queued"):
            self._amount_changed()
            await self.load_top_used_values()
        return result

    def close(self) -> None:
        self.inference.close()

    # --- views ---

    def snapshot(self) -> QuickEntrySessionResponse:
        state = self.calculator.snapshot()
        inference = self.inference.state
        coordinator = self.coordinator

        def field_view(field: SelectionField) -> FieldSelectionView:
            selection = coordinator.selection(field)
            return FieldSelectionView(id=selection.value, state=selection.state.value)

        return QuickEntrySessionResponse(
            session_id=self.session_id,
            calculator=CalculatorView(
                display=state.display,
                previous_value=state.previous_value,
                operation=state.operation,
                waiting_for_new_value=state.waiting_for_new_value,
                show_amount=self.calculator.show_amount,
                effective_amount=self.calculator.effective_amount(),
            ),
            selection=SelectionView(
                account=field_view(SelectionField.ACCOUNT),
                category=field_view(SelectionField.CATEGORY),
                payee=field_view(SelectionField.PAYEE),
            ),
            inference=InferenceView(
                account_id=inference.account_id,
                payee_id=inference.payee_id,
                category_id=inference.category_id,
                count=inference.count,
                loading=inference.loading,
                error=str(inference.error) if inference.error else None,
            ),
            accounts=coordinator.entities[SelectionField.ACCOUNT],
            categories=coordinator.entities[SelectionField.CATEGORY],
            payees=coordinator.entities[SelectionField.PAYEE],
            top_used_values=self.top_used_values,
            creating=coordinator.creating,
            error=coordinator.error,
        )

    # --- wiring ---

    async def _lookup(self, amount: float, lookback_days: int):
        return await self.gateway.lookup_most_used_details(amount, lookback_days)

    def _amount_changed(self) -> None:
        amount = self.calculator.effective_amount()
        if amount == self._last_amount:
            return
        self._last_amount = amount
        self.inference.submit(amount)

    def _on_inference(self, state: InferenceState) -> None:
        if self.calculator.effective_amount() is None:
            return
        self.coordinator.apply_inference(state)


@dataclass
class _SessionEntry:
    user_id: str
    session: QuickEntrySession
    last_seen: float


class SessionRegistry:
    """
    In-process sessions and offline monitors, keyed by user.

    Sessions untouched for session_ttl seconds are dropped by evict_idle(),
    which start_sweeper() runs periodically. A user's monitor is stopped and
    released once the user has no sessions and an empty queue; with entries
    still pending it keeps polling until they are drained.
    """

    def __init__(
        self,
        queue_dir: Optional[str] = None,
        start_polling: bool = True,
        debounce_seconds: float = settings.INFERENCE_DEBOUNCE_MS / 1000,
        session_ttl: float = settings.SESSION_IDLE_TTL_SECONDS,
        probe: Optional[ReachabilityProbe] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.queue_dir = Path(queue_dir or settings.OFFLINE_QUEUE_DIR)
        self.start_polling = start_polling
        self.debounce_seconds = debounce_seconds
        self.session_ttl = session_ttl
        self.probe = probe
        self._clock = clock
        self._sessions: Dict[str, _SessionEntry] = {}
        self._monitors: Dict[str, OfflineSyncMonitor] = {}
        self._monitor_seen: Dict[str, float] = {}
        self._sweeper: Optional[asyncio.Task] = None

    def monitor_for(self, user_id: str, gateway: LedgerGateway) -> OfflineSyncMonitor:
        """Get or create the user's sync monitor, replaying through `gateway`."""
        monitor = self._monitors.get(user_id)
        if monitor is None:
            store = SqliteKeyValueStore(self.queue_dir / f"{user_id}.sqlite3")
            queue = OfflineMutationQueue(store, max_size=settings.OFFLINE_QUEUE_MAX_SIZE)
            monitor = OfflineSyncMonitor(
                queue,
                gateway.execute_mutation,
                probe=self.probe,
                check_interval=settings.CONNECTIVITY_CHECK_INTERVAL_MS / 1000,
                max_retries=settings.OFFLINE_QUEUE_MAX_RETRIES,
            )
            self._monitors[user_id] = monitor
            if self.start_polling:
                monitor.start()
        else:
            monitor.executor = gateway.execute_mutation
        self._monitor_seen[user_id] = self._clock()
        return monitor

    async def create_session(self, user_id: str, gateway: LedgerGateway) -> QuickEntrySession:
        monitor = self.monitor_for(user_id, gateway)
        session = QuickEntrySession(
            gateway,
            queue=monitor.queue,
            debounce_seconds=self.debounce_seconds,
            on_unreachable=partial(monitor.set_online, False),
        )
        # Registered before loading so a concurrent close() keeps the monitor
        self._sessions[session.session_id] = _SessionEntry(user_id, session, self._clock())
        await session.load()
        logger.info(f"Quick-entry session {session.session_id} opened for user {user_id}")
        return session

    def get(self, session_id: str, user_id: str) -> Optional[QuickEntrySession]:
        entry = self._sessions.get(session_id)
        if entry is None or entry.user_id != user_id:
            return None
        entry.last_seen = self._clock()
        return entry.session

    async def close(self, session_id: str, user_id: str) -> bool:
        entry = self._sessions.get(session_id)
        if entry is None or entry.user_id != user_id:
            return False
        self._drop_session(session_id)
        logger.info(f"Quick-entry session {session_id} closed for user {user_id}")
        await self._release_monitor(user_id)
        return True

    async def evict_idle(self, now: Optional[float] = None) -> List[str]:
        """
        Drop sessions idle for session_ttl and release monitors nobody uses.

        Returns:
            Ids of the evicted sessions.
        """
        now = self._clock() if now is None else now
        expired = [
            session_id
            for session_id, entry in self._sessions.items()
            if now - entry.last_seen >= self.session_ttl
        ]
        for session_id in expired:
            self._drop_session(session_id)
            logger.info(f"Quick-entry session {session_id} evicted after {self.session_ttl}s idle")

        for user_id in list(self._monitors):
            await self._release_monitor(user_id, idle_before=now - self.session_ttl)
        return expired

    def start_sweeper(self, interval: float = settings.SESSION_SWEEP_INTERVAL_SECONDS) -> None:
        """Run evict_idle() every `interval` seconds (requires a running event loop)."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep(interval))

    async def shutdown(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            await asyncio.gather(self._sweeper, return_exceptions=True)
            self._sweeper = None
        for entry in self._sessions.values():
            entry.session.close()
        self._sessions.clear()
        for monitor in self._monitors.values():
            await monitor.stop()
        self._monitors.clear()
        self._monitor_seen.clear()

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def has_monitor(self, user_id: str) -> bool:
        return user_id in self._monitors

    async def _sweep(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.evict_idle()
            except Exception as e:
                logger.error(f"Session sweep failed: {e}", exc_info=True)

    def _drop_session(self, session_id: str) -> None:
        entry = self._sessions.pop(session_id)
        entry.session.close()

    def _has_sessions(self, user_id: str) -> bool:
        return any(entry.user_id == user_id for entry in self._sessions.values())

    async def _release_monitor(self, user_id: str, idle_before: Optional[float] = None) -> bool:
        monitor = self._monitors.get(user_id)
        if monitor is None or self._has_sessions(user_id):
            return False
        seen = self._monitor_seen.get(user_id, 0.0)
        if idle_before is not None and seen > idle_before:
            return False

        if await monitor.refresh_queue_size() > 0:
            logger.debug(f"Keeping offline monitor for user {user_id}, entries pending")
            return False
        # monitor_for() or create_session() may have run during the await
        if self._has_sessions(user_id) or self._monitor_seen.get(user_id) != seen:
            return False

        del self._monitors[user_id]
        self._monitor_seen.pop(user_id, None)
        await monitor.stop()
        logger.info(f"Released offline monitor for user {user_id}")
        return True


registry = SessionRegistry()
