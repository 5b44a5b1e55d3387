"""
Tests for the Supabase-backed ledger collaborators.

Tests follow the service-layer conventions:
- Mock Supabase query chains with MagicMock
- Verify aggregation rules for usage inference and top used values
- Verify SupabaseLedgerGateway maps failures to the error taxonomy
"""

from unittest.mock import MagicMock

import httpx
import pytest

from quickentry.services.transaction_service import (
    SupabaseLedgerGateway,
    create_transaction,
    get_most_used_transaction_details,
    get_top_used_values,
    get_user_accounts,
)
from quickentry.utils.errors import RemoteCallFailed, RemoteUnavailable, ValidationFailed


def query_result(supabase_client, rows):
    """Make every chained query on the mock return `rows`."""
    table = supabase_client.table.return_value
    for method in ("select", "insert", "eq", "gte", "or_", "order"):
        getattr(table, method).return_value = table
    table.execute.return_value = MagicMock(data=rows)
    return table


class TestCreateTransaction:

    @pytest.mark.asyncio
    async def test_inserts_with_user_id(self, supabase_client):
        table = query_result(supabase_client, [{"id": "txn-1", "value": 42.5}])
        payload = {"value": 42.5, "account_id": "acc-1", "category_id": None, "date": "2025-11-03T10:15:00+00:00"}

        created = await create_transaction(supabase_client, "user-1", payload)

        assert created["id"] == "txn-1"
        supabase_client.table.assert_called_with("transaction")
        table.insert.assert_called_once_with({"user_id": "user-1", **payload})

    @pytest.mark.asyncio
    async def test_requires_account(self, supabase_client):
        with pytest.raises(ValueError):
            await create_transaction(supabase_client, "user-1", {"value": 1.0, "account_id": ""})

    @pytest.mark.asyncio
    async def test_no_data_returned_raises(self, supabase_client):
        query_result(supabase_client, [])

        with pytest.raises(Exception, match="no data returned"):
            await create_transaction(supabase_client, "user-1", {"value": 1.0, "account_id": "acc-1"})


class TestMostUsedDetails:

    @pytest.mark.asyncio
    async def test_largest_group_wins(self, supabase_client):
        query_result(supabase_client, [
            {"account_id": "a1", "payee_id": None, "category_id": "c1", "date": "2025-10-01T00:00:00Z"},
            {"account_id": "a2", "payee_id": "p1", "category_id": "c2", "date": "2025-10-02T00:00:00Z"},
            {"account_id": "a2", "payee_id": "p1", "category_id": "c2", "date": "2025-10-03T00:00:00Z"},
        ])

        result = await get_most_used_transaction_details(supabase_client, "user-1", 42.5)

        assert result.account_id == "a2"
        assert result.payee_id == "p1"
        assert result.category_id == "c2"
        assert result.count == 2

    @pytest.mark.asyncio
    async def test_tie_goes_to_most_recent(self, supabase_client):
        query_result(supabase_client, [
            {"account_id": "a1", "payee_id": None, "category_id": "c1", "date": "2025-10-05T00:00:00Z"},
            {"account_id": "a2", "payee_id": None, "category_id": "c2", "date": "2025-09-01T00:00:00Z"},
        ])

        result = await get_most_used_transaction_details(supabase_client, "user-1", 10)

        assert result.account_id == "a1"
        assert result.count == 1

    @pytest.mark.asyncio
    async def test_no_match_returns_none(self, supabase_client):
        query_result(supabase_client, [])

        assert await get_most_used_transaction_details(supabase_client, "user-1", 10) is None

    @pytest.mark.asyncio
    async def test_filters_by_amount_and_lookback(self, supabase_client):
        table = query_result(supabase_client, [])

        await get_most_used_transaction_details(supabase_client, "user-1", 42.5, days=30)

        table.eq.assert_any_call("user_id", "user-1")
        table.eq.assert_any_call("value", 42.5)
        assert table.gte.call_args.args[0] == "date"


class TestTopUsedValues:

    @pytest.mark.asyncio
    async def test_most_common_amounts(self, supabase_client):
        query_result(supabase_client, [
            {"value": 5}, {"value": 5.0}, {"value": 12.5}, {"value": None}, {"value": 12.5}, {"value": 5},
            {"value": 99},
        ])

        values = await get_top_used_values(supabase_client, "user-1", days=90, limit=2)

        assert [(value.value, value.count) for value in values] == [(5.0, 3), (12.5, 2)]


class TestSupabaseLedgerGateway:

    @pytest.mark.asyncio
    async def test_list_accounts_returns_entities(self, supabase_client):
        query_result(supabase_client, [
            {"id": "a1", "name": "Cash", "is_default": True},
            {"id": "a2", "name": "Bank", "is_default": None},
        ])
        gateway = SupabaseLedgerGateway(supabase_client, "user-1")

        accounts = await gateway.list_accounts()

        assert [(a.id, a.name, a.is_default) for a in accounts] == [
            ("a1", "Cash", True),
            ("a2", "Bank", False),
        ]

    @pytest.mark.asyncio
    async def test_transport_error_is_unavailable(self, supabase_client):
        table = query_result(supabase_client, [])
        table.execute.side_effect = httpx.ConnectError("connection refused")
        gateway = SupabaseLedgerGateway(supabase_client, "user-1")

        with pytest.raises(RemoteUnavailable):
            await gateway.create_transaction({"value": 1.0, "account_id": "acc-1"})

    @pytest.mark.asyncio
    async def test_other_failures_are_remote_call_failed(self, supabase_client):
        table = query_result(supabase_client, [])
        table.execute.side_effect = RuntimeError("permission denied for table transaction")
        gateway = SupabaseLedgerGateway(supabase_client, "user-1")

        with pytest.raises(RemoteCallFailed) as exc_info:
            await gateway.list_payees()

        assert not isinstance(exc_info.value, RemoteUnavailable)

    @pytest.mark.asyncio
    async def test_invalid_payload_is_validation_failed(self, supabase_client):
        gateway = SupabaseLedgerGateway(supabase_client, "user-1")

        with pytest.raises(ValidationFailed):
            await gateway.create_transaction({"value": None, "account_id": "acc-1"})

    @pytest.mark.asyncio
    async def test_execute_mutation_replays_create(self, supabase_client):
        query_result(supabase_client, [{"id": "txn-9"}])
        gateway = SupabaseLedgerGateway(supabase_client, "user-1")

        created = await gateway.execute_mutation(
            "create_transaction", {"value": 3.0, "account_id": "acc-1"}
        )

        assert created == {"id": "txn-9"}

    @pytest.mark.asyncio
    async def test_execute_mutation_unknown_name(self, supabase_client):
        gateway = SupabaseLedgerGateway(supabase_client, "user-1")

        with pytest.raises(ValidationFailed):
            await gateway.execute_mutation("delete_everything", {})


@pytest.mark.asyncio
async def test_get_user_accounts_scoped_to_user(supabase_client):
    table = query_result(supabase_client, [{"id": "a1", "name": "Cash", "is_default": True}])

    accounts = await get_user_accounts(supabase_client, "user-1")

    assert accounts == [{"id": "a1", "name": "Cash", "is_default": True}]
    table.eq.assert_called_with("user_id", "user-1")
