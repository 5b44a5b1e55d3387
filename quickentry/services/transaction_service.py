"""
Ledger collaborators for quick entry.

Supabase-backed service functions for the remote operations the quick-entry
core consumes:
- create a transaction
- list accounts / categories / payees for the pickers
- most used account / payee / category for an amount (usage inference)
- most used amounts (quick-select chips)

SupabaseLedgerGateway binds a client and a user to these functions and
converts failures into the core's error taxonomy, so that the coordinator,
the inference debouncer and the offline sync monitor never see Supabase or
httpx exceptions.

CRITICAL RULES:
1. All operations MUST respect RLS (user_id = auth.uid())
2. Never trust client-provided user_id - always use the authenticated user_id
3. Aggregations (most used details / values) run here, over rows RLS lets us read
"""

import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Protocol, Tuple, cast

import httpx
from supabase import Client

from quickentry.schemas.ledger import LedgerEntity, TopUsedValue, UsageInferenceResult
from quickentry.utils.constants import (
    DEFAULT_LOOKBACK_DAYS,
    MUTATION_NAMES,
    TOP_USED_VALUES_LIMIT,
)
from quickentry.utils.errors import RemoteCallFailed, RemoteUnavailable, ValidationFailed

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _since(days: int) -> str:
    return (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()


def _parse_date(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _to_entities(rows: List[Dict[str, Any]]) -> List[LedgerEntity]:
    return [
        LedgerEntity(
            id=str(row["id"]),
            name=str(row.get("name") or ""),
            is_default=bool(row.get("is_default")),
        )
        for row in rows
        if row.get("id")
    ]


async def create_transaction(
    supabase_client: Client,
    user_id: str,
    payload: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Insert a quick-entry transaction.

    Args:
        supabase_client: Authenticated Supabase client (with user token)
        user_id: The authenticated user's ID (from JWT token)
        payload: value, account_id, category_id, optional payee_id, date

    Returns:
        The created transaction record (includes id)

    Raises:
        ValueError: If value or account_id is missing
        Exception: If the database operation fails
    """
    if payload.get("value") is None or not payload.get("account_id"):
        raise ValueError("Transaction payload requires value and account_id")

    record = {"user_id": user_id, **payload}

    logger.info(f"Creating quick-entry transaction for user {user_id}: account={payload['account_id']}")

    result = supabase_client.table("transaction").insert(record).execute()

    if not result.data or len(result.data) == 0:
        raise Exception("Failed to create transaction: no data returned")

    created = cast(Dict[str, Any], result.data[0])
    logger.info(f"Transaction created successfully: id={created.get('id')}, user_id={user_id}")
    return created


async def get_user_accounts(supabase_client: Client, user_id: str) -> List[Dict[str, Any]]:
    """Fetch the user's accounts, oldest first."""
    result = (
        supabase_client.table("account")
        .select("id, name, is_default")
        .eq("user_id", user_id)
        .order("created_at")
        .execute()
    )
    accounts = cast(List[Dict[str, Any]], result.data or [])
    logger.debug(f"Found {len(accounts)} accounts for user {user_id}")
    return accounts


async def get_user_categories(supabase_client: Client, user_id: str) -> List[Dict[str, Any]]:
    """Fetch system categories (user_id IS NULL) plus the user's own."""
    result = (
        supabase_client.table("category")
        .select("id, name, is_default")
        .or_(f"user_id.is.null,user_id.eq.{user_id}")
        .order("name")
        .execute()
    )
    categories = cast(List[Dict[str, Any]], result.data or [])
    logger.debug(f"Found {len(categories)} categories for user {user_id}")
    return categories


async def get_user_payees(supabase_client: Client, user_id: str) -> List[Dict[str, Any]]:
    """Fetch the user's payees ordered by name."""
    result = (
        supabase_client.table("payee")
        .select("id, name, is_default")
        .eq("user_id", user_id)
        .order("name")
        .execute()
    )
    payees = cast(List[Dict[str, Any]], result.data or [])
    logger.debug(f"Found {len(payees)} payees for user {user_id}")
    return payees


async def get_most_used_transaction_details(
    supabase_client: Client,
    user_id: str,
    amount: float,
    days: int = DEFAULT_LOOKBACK_DAYS,
) -> Optional[UsageInferenceResult]:
    """
    Find the account / payee / category combination most used with an amount.

    Transactions with exactly this value in the last `days` days are grouped
    by (account_id, payee_id, category_id). The largest group wins; ties go
    to the group with the most recent transaction.

    Returns:
        The winning combination, or None if no transaction matches.
    """
    result = (
        supabase_client.table("transaction")
        .select("account_id, payee_id, category_id, date")
        .eq("user_id", user_id)
        .eq("value", amount)
        .gte("date", _since(days))
        .execute()
    )
    rows = cast(List[Dict[str, Any]], result.data or [])
    if not rows:
        return None

    counts: Counter = Counter()
    latest: Dict[Tuple[Optional[str], Optional[str], Optional[str]], datetime] = {}
    for row in rows:
        key = (row.get("account_id"), row.get("payee_id"), row.get("category_id"))
        counts[key] += 1
        when = _parse_date(row.get("date")) or _EPOCH
        if key not in latest or when > latest[key]:
            latest[key] = when

    best = max(counts, key=lambda key: (counts[key], latest[key]))
    account_id, payee_id, category_id = best

    return UsageInferenceResult(
        account_id=account_id,
        payee_id=payee_id,
        category_id=category_id,
        count=counts[best],
    )


async def get_top_used_values(
    supabase_client: Client,
    user_id: str,
    days: int = DEFAULT_LOOKBACK_DAYS,
    limit: int = TOP_USED_VALUES_LIMIT,
) -> List[TopUsedValue]:
    """Return the most frequently entered amounts in the lookback window."""
    result = (
        supabase_client.table("transaction")
        .select("value")
        .eq("user_id", user_id)
        .gte("date", _since(days))
        .execute()
    )
    rows = cast(List[Dict[str, Any]], result.data or [])

    counts: Counter = Counter()
    for row in rows:
        value = row.get("value")
        if value is None:
            continue
        try:
            counts[float(value)] += 1
        except (TypeError, ValueError):
            continue

    return [TopUsedValue(value=value, count=count) for value, count in counts.most_common(limit)]


class LedgerGateway(Protocol):
    """Remote operations consumed by the quick-entry core."""

    async def create_transaction(self, payload: Dict[str, Any]) -> Dict[str, Any]: ...

    async def list_accounts(self) -> List[LedgerEntity]: ...

    async def list_categories(self) -> List[LedgerEntity]: ...

    async def list_payees(self) -> List[LedgerEntity]: ...

    async def lookup_most_used_details(
        self, amount: float, lookback_days: int
    ) -> Optional[UsageInferenceResult]: ...

    async def list_top_used_values(self, days: int) -> List[TopUsedValue]: ...

    async def execute_mutation(self, mutation: str, variables: Dict[str, Any]) -> Any: ...


class SupabaseLedgerGateway:
    """LedgerGateway over an authenticated Supabase client."""

    def __init__(self, supabase_client: Client, user_id: str) -> None:
        self.supabase_client = supabase_client
        self.user_id = user_id

    async def _guard(self, operation: str, call):
        try:
            return await call
        except httpx.TransportError as e:
            logger.warning(f"{operation} failed: backend unreachable ({type(e).__name__})")
            raise RemoteUnavailable(f"{operation} failed: backend unreachable") from e
        except ValueError as e:
            raise ValidationFailed(str(e)) from e
        except Exception as e:
            logger.error(f"{operation} failed: {e}")
            raise RemoteCallFailed(f"{operation} failed: {e}") from e

    async def create_transaction(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._guard(
            "create_transaction",
            create_transaction(self.supabase_client, self.user_id, payload),
        )

    async def list_accounts(self) -> List[LedgerEntity]:
        rows = await self._guard(
            "list_accounts", get_user_accounts(self.supabase_client, self.user_id)
        )
        return _to_entities(rows)

    async def list_categories(self) -> List[LedgerEntity]:
        rows = await self._guard(
            "list_categories", get_user_categories(self.supabase_client, self.user_id)
        )
        return _to_entities(rows)

    async def list_payees(self) -> List[LedgerEntity]:
        rows = await self._guard(
            "list_payees", get_user_payees(self.supabase_client, self.user_id)
        )
        return _to_entities(rows)

    async def lookup_most_used_details(
        self, amount: float, lookback_days: int = DEFAULT_LOOKBACK_DAYS
    ) -> Optional[UsageInferenceResult]:
        return await self._guard(
            "lookup_most_used_details",
            get_most_used_transaction_details(
                self.supabase_client, self.user_id, amount, lookback_days
            ),
        )

    async def list_top_used_values(self, days: int = DEFAULT_LOOKBACK_DAYS) -> List[TopUsedValue]:
        return await self._guard(
            "list_top_used_values",
            get_top_used_values(self.supabase_client, self.user_id, days),
        )

    async def execute_mutation(self, mutation: str, variables: Dict[str, Any]) -> Any:
        """Replay a queued mutation by name."""
        if mutation == MUTATION_NAMES["CREATE_TRANSACTION"]:
            return await self.create_transaction(variables)
        raise ValidationFailed(f"Unknown queued mutation: {mutation}")
