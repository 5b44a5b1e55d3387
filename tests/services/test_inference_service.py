"""
Tests for the debounced usage inference.

Uses a 10 ms debounce window so tests stay fast while still exercising the
real asyncio timers.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from quickentry.schemas.ledger import UsageInferenceResult
from quickentry.services.inference_service import UsageInferenceDebouncer

DEBOUNCE = 0.01

RESULT = UsageInferenceResult(
    account_id="acc-bank", payee_id="payee-shop", category_id="cat-food", count=3
)


def make_debouncer(lookup) -> UsageInferenceDebouncer:
    return UsageInferenceDebouncer(lookup, lookback_days=90, debounce_seconds=DEBOUNCE)


class TestDebounce:

    @pytest.mark.asyncio
    async def test_rapid_amounts_trigger_one_lookup_for_the_last(self):
        lookup = AsyncMock(return_value=RESULT)
        debouncer = make_debouncer(lookup)

        for amount in (10, 20, 30):
            debouncer.submit(amount)
        await debouncer.wait_idle()

        lookup.assert_awaited_once_with(30.0, 90)
        state = debouncer.state
        assert state.account_id == "acc-bank"
        assert state.category_id == "cat-food"
        assert state.payee_id == "payee-shop"
        assert state.count == 3
        assert state.loading is False

    @pytest.mark.asyncio
    async def test_amounts_outside_window_each_trigger_lookup(self):
        lookup = AsyncMock(return_value=RESULT)
        debouncer = make_debouncer(lookup)

        debouncer.submit(10)
        await debouncer.wait_idle()
        debouncer.submit(20)
        await debouncer.wait_idle()

        assert [call.args for call in lookup.await_args_list] == [(10.0, 90), (20.0, 90)]

    @pytest.mark.asyncio
    async def test_in_flight_lookup_is_not_cancelled_by_new_amount(self):
        started = asyncio.Event()
        release = asyncio.Event()
        seen = []

        async def lookup(amount, days):
            seen.append(amount)
            started.set()
            await release.wait()
            return UsageInferenceResult(account_id=f"acc-{int(amount)}", count=1)

        debouncer = make_debouncer(lookup)
        debouncer.submit(10)
        await started.wait()
        debouncer.submit(20)
        release.set()
        await debouncer.wait_idle()

        assert seen == [10.0, 20.0]
        assert debouncer.state.account_id == "acc-20"


class TestInvalidAmounts:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [None, 0, -5, float("nan"), float("inf"), "12", True])
    async def test_clears_ids_without_lookup(self, amount):
        lookup = AsyncMock(return_value=RESULT)
        debouncer = make_debouncer(lookup)
        debouncer.submit(12)
        await debouncer.wait_idle()
        assert debouncer.state.account_id == "acc-bank"

        debouncer.submit(amount)

        state = debouncer.state
        assert state.account_id is None
        assert state.category_id is None
        assert state.payee_id is None
        assert state.loading is False
        lookup.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cancels_pending_timer(self):
        lookup = AsyncMock(return_value=RESULT)
        debouncer = make_debouncer(lookup)

        debouncer.submit(10)
        debouncer.submit(None)
        await debouncer.wait_idle()

        lookup.assert_not_awaited()


class TestLookupResults:

    @pytest.mark.asyncio
    async def test_none_clears_ids(self):
        lookup = AsyncMock(side_effect=[RESULT, None])
        debouncer = make_debouncer(lookup)

        debouncer.submit(10)
        await debouncer.wait_idle()
        debouncer.submit(11)
        await debouncer.wait_idle()

        assert debouncer.state.account_id is None
        assert debouncer.state.count == 0

    @pytest.mark.asyncio
    async def test_failure_keeps_known_ids(self):
        failure = RuntimeError("rpc down")
        lookup = AsyncMock(side_effect=[RESULT, failure])
        debouncer = make_debouncer(lookup)

        debouncer.submit(10)
        await debouncer.wait_idle()
        debouncer.submit(11)
        await debouncer.wait_idle()

        state = debouncer.state
        assert state.account_id == "acc-bank"
        assert state.error is failure
        assert state.loading is False

    @pytest.mark.asyncio
    async def test_listeners_receive_loading_then_result(self):
        lookup = AsyncMock(return_value=RESULT)
        debouncer = make_debouncer(lookup)
        updates = []
        debouncer.add_listener(updates.append)

        debouncer.submit(10)
        await debouncer.wait_idle()

        assert [update.loading for update in updates] == [True, False]
        assert updates[-1].account_id == "acc-bank"

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_others(self):
        lookup = AsyncMock(return_value=RESULT)
        debouncer = make_debouncer(lookup)
        updates = []

        def broken(_state):
            raise RuntimeError("listener bug")

        debouncer.add_listener(broken)
        debouncer.add_listener(updates.append)

        debouncer.submit(10)
        await debouncer.wait_idle()

        assert updates[-1].account_id == "acc-bank"


class TestClose:

    @pytest.mark.asyncio
    async def test_late_response_is_dropped(self):
        started = asyncio.Event()
        release = asyncio.Event()

        async def lookup(amount, days):
            started.set()
            await release.wait()
            return RESULT

        debouncer = make_debouncer(lookup)
        updates = []
        debouncer.add_listener(updates.append)

        debouncer.submit(10)
        await started.wait()
        debouncer.close()
        release.set()
        await debouncer.wait_idle()

        assert debouncer.state.account_id is None
        assert [update.loading for update in updates] == [True]

    @pytest.mark.asyncio
    async def test_close_cancels_pending_timer(self):
        lookup = AsyncMock(return_value=RESULT)
        debouncer = make_debouncer(lookup)

        debouncer.submit(10)
        debouncer.close()
        await asyncio.sleep(DEBOUNCE * 3)

        lookup.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_submit_after_close_is_ignored(self):
        lookup = AsyncMock(return_value=RESULT)
        debouncer = make_debouncer(lookup)
        debouncer.close()

        debouncer.submit(10)
        await debouncer.wait_idle()

        lookup.assert_not_awaited()
