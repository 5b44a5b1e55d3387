"""
Pytest configuration for quick-entry tests.

Sets up test environment and global fixtures.
"""
import os
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

# Disable config validation during tests
# This allows tests to run without requiring real environment variables
os.environ["VALIDATE_CONFIG"] = "false"

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_PUBLISHABLE_KEY", "test-publishable-key")

from quickentry.schemas.ledger import LedgerEntity, TopUsedValue, UsageInferenceResult  # noqa: E402


class FakeLedgerGateway:
    """
    In-memory LedgerGateway.

    Set `create_error` / `lookup_error` to an exception to make the next
    calls fail; `mutation_errors` is consumed one item per replay (None
    means success).
    """

    def __init__(self) -> None:
        self.accounts: List[LedgerEntity] = [
            LedgerEntity(id="acc-cash", name="Cash", is_default=True),
            LedgerEntity(id="acc-bank", name="Bank"),
        ]
        self.categories: List[LedgerEntity] = [
            LedgerEntity(id="cat-food", name="Food"),
            LedgerEntity(id="cat-transport", name="Transport"),
        ]
        self.payees: List[LedgerEntity] = []
        self.top_used_values: List[TopUsedValue] = []
        self.most_used: Optional[UsageInferenceResult] = None

        self.create_error: Optional[Exception] = None
        self.lookup_error: Optional[Exception] = None
        self.mutation_errors: List[Optional[Exception]] = []

        self.created: List[Dict[str, Any]] = []
        self.lookups: List[tuple] = []
        self.mutations: List[tuple] = []

    async def create_transaction(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if self.create_error is not None:
            raise self.create_error
        self.created.append(payload)
        return {"id": f"txn-{len(self.created)}", **payload}

    async def list_accounts(self) -> List[LedgerEntity]:
        return list(self.accounts)

    async def list_categories(self) -> List[LedgerEntity]:
        return list(self.categories)

    async def list_payees(self) -> List[LedgerEntity]:
        return list(self.payees)

    async def lookup_most_used_details(
        self, amount: float, lookback_days: int
    ) -> Optional[UsageInferenceResult]:
        self.lookups.append((amount, lookback_days))
        if self.lookup_error is not None:
            raise self.lookup_error
        return self.most_used

    async def list_top_used_values(self, days: int) -> List[TopUsedValue]:
        return list(self.top_used_values)

    async def execute_mutation(self, mutation: str, variables: Dict[str, Any]) -> Any:
        self.mutations.append((mutation, variables))
        if self.mutation_errors:
            error = self.mutation_errors.pop(0)
            if error is not None:
                raise error
        return {"id": f"replayed-{len(self.mutations)}"}


@pytest.fixture
def supabase_client():
    """
    Mock Supabase client for testing service functions.
    Returns a MagicMock that simulates Supabase client behavior.
    """
    mock_client = MagicMock()
    return mock_client


@pytest.fixture
def fake_gateway():
    """Fresh in-memory ledger gateway."""
    return FakeLedgerGateway()
