"""
Usage inference for quick entry.

While the user types an amount, look up which account, category and payee
were most often used with that amount and offer them as the selection.

Amount changes are debounced: only the last amount submitted within the
debounce window triggers a lookup. Amounts that are missing, not numeric or
not positive skip the network and clear the inferred ids immediately.

A lookup that is already in flight is not aborted by later input; results
are applied in arrival order. After close(), late responses are dropped.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, replace
from numbers import Real
from typing import Awaitable, Callable, List, Optional, Set

from quickentry.schemas.ledger import UsageInferenceResult
from quickentry.utils.constants import DEFAULT_DEBOUNCE_SECONDS, DEFAULT_LOOKBACK_DAYS

logger = logging.getLogger(__name__)

LookupFn = Callable[[float, int], Awaitable[Optional[UsageInferenceResult]]]


@dataclass
class InferenceState:
    """Latest inferred ids plus lookup status."""
    account_id: Optional[str] = None
    payee_id: Optional[str] = None
    category_id: Optional[str] = None
    count: int = 0
    loading: bool = False
    error: Optional[Exception] = None


InferenceListener = Callable[[InferenceState], None]


def _is_lookup_amount(amount: object) -> bool:
    if isinstance(amount, bool) or not isinstance(amount, Real):
        return False
    return math.isfinite(amount) and amount > 0


class UsageInferenceDebouncer:
    """Debounced most-used-details lookup for the amount being entered."""

    def __init__(
        self,
        lookup: LookupFn,
        lookback_days: int = DEFAULT_LOOKBACK_DAYS,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        self._lookup = lookup
        self.lookback_days = lookback_days
        self.debounce_seconds = debounce_seconds
        self._state = InferenceState()
        self._listeners: List[InferenceListener] = []
        self._timer: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()
        self._closed = False

    @property
    def state(self) -> InferenceState:
        return replace(self._state)

    def add_listener(self, listener: InferenceListener) -> None:
        self._listeners.append(listener)

    def submit(self, amount: Optional[float]) -> None:
        """
        Offer a new candidate amount.

        Must be called from a running event loop when the amount is valid,
        since the debounce timer is an asyncio task.
        """
        if self._closed:
            return

        self._cancel_timer()

        if not _is_lookup_amount(amount):
            self._update(account_id=None, payee_id=None, category_id=None, count=0, loading=False)
            return

        self._timer = asyncio.get_running_loop().create_task(self._debounced(float(amount)))

    def close(self) -> None:
        """Stop applying updates; pending and in-flight lookups are ignored."""
        self._closed = True
        self._cancel_timer()
        self._listeners.clear()

    async def wait_idle(self) -> None:
        """Wait until the debounce timer and every in-flight lookup have settled."""
        while True:
            pending = [
                task for task in (self._timer, *self._in_flight)
                if task is not None and not task.done()
            ]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def _debounced(self, amount: float) -> None:
        try:
            await asyncio.sleep(self.debounce_seconds)
        except asyncio.CancelledError:
            return

        # From here on a newer submit() must not cancel the request
        lookup_task = asyncio.get_running_loop().create_task(self._run_lookup(amount))
        self._in_flight.add(lookup_task)
        lookup_task.add_done_callback(self._in_flight.discard)
        if self._timer is asyncio.current_task():
            self._timer = None

    async def _run_lookup(self, amount: float) -> None:
        self._update(loading=True)
        try:
            result = await self._lookup(amount, self.lookback_days)
        except Exception as e:
            if self._closed:
                return
            logger.warning(f"Most used details lookup failed: {e}")
            # No new information: keep whatever is selected
            self._update(loading=False, error=e)
            return

        if self._closed:
            logger.debug("Dropping most used details response after close")
            return

        if result is None:
            self._update(
                account_id=None, payee_id=None, category_id=None, count=0,
                loading=False, error=None,
            )
            return

        self._update(
            account_id=result.account_id,
            payee_id=result.payee_id,
            category_id=result.category_id,
            count=result.count,
            loading=False,
            error=None,
        )

    def _update(self, **changes) -> None:
        if self._closed:
            return
        self._state = replace(self._state, **changes)
        snapshot = self.state
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Inference listener failed: {e}", exc_info=True)
