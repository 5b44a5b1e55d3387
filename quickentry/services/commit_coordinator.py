"""
Commit coordinator for quick entry.

Owns the account / category / payee selection for the next transaction and
turns "save the calculator value" into a create-transaction call.

Each selection field carries a tagged state:

    UNSET -> DEFAULTED      first load of the entity list (at most once)
    UNSET/DEFAULTED/INFERRED -> INFERRED
                            usage inference returned a known id
    any -> USER_SET         explicit choice; inference never overrides it
    any -> DEFAULTED/UNSET  reset_selection() (after a commit)

RULES:
1. Defaults come from the entity flagged is_default, else the first entity
2. A field is defaulted at most once; a user-cleared field stays empty
3. Inferred ids are applied only if they exist in the loaded entity list
4. payee_id is omitted from the payload when empty (never sent as null)
5. Failures are returned as CommitResult, never raised
6. A commit that fails because the backend is unreachable is queued for
   replay when a queue is attached, and on_unreachable is told so the
   offline monitor can schedule a drain
"""

import logging
import math
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from numbers import Real
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from quickentry.schemas.ledger import LedgerEntity
from quickentry.schemas.quick_entry import CommitNotification, CommitResult
from quickentry.services.calculator import CalculatorMachine
from quickentry.services.offline_queue import OfflineMutationQueue
from quickentry.services.transaction_service import LedgerGateway
from quickentry.utils.constants import MUTATION_NAMES
from quickentry.utils.errors import QueueFull, RemoteUnavailable

logger = logging.getLogger(__name__)


class SelectionState(str, Enum):
    UNSET = "unset"
    DEFAULTED = "defaulted"
    INFERRED = "inferred"
    USER_SET = "user_set"


class SelectionField(str, Enum):
    ACCOUNT = "account"
    CATEGORY = "category"
    PAYEE = "payee"


@dataclass
class FieldSelection:
    value: str = ""
    state: SelectionState = SelectionState.UNSET


class InferredIds(Protocol):
    account_id: Optional[str]
    category_id: Optional[str]
    payee_id: Optional[str]


def default_entity_id(entities: List[LedgerEntity]) -> Optional[str]:
    """Id of the is_default entity, else of the first one."""
    if not entities:
        return None
    for entity in entities:
        if entity.is_default:
            return entity.id
    return entities[0].id


def _is_finite_number(amount: object) -> bool:
    if isinstance(amount, bool) or not isinstance(amount, Real):
        return False
    return math.isfinite(amount)


class TransactionCommitCoordinator:
    """Selection state plus the create-transaction commit flow."""

    def __init__(
        self,
        gateway: LedgerGateway,
        calculator: CalculatorMachine,
        queue: Optional[OfflineMutationQueue] = None,
        on_notify: Optional[Callable[[CommitNotification], None]] = None,
        on_committed: Optional[Callable[[CommitResult], None]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        on_unreachable: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        self.gateway = gateway
        self.calculator = calculator
        self.queue = queue
        self.on_notify = on_notify
        self.on_committed = on_committed
        self.on_unreachable = on_unreachable
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self.entities: Dict[SelectionField, List[LedgerEntity]] = {
            field: [] for field in SelectionField
        }
        self._fields: Dict[SelectionField, FieldSelection] = {
            field: FieldSelection() for field in SelectionField
        }

        self.creating = False
        self.error: Optional[str] = None

    # --- entity loading & defaults ---

    def load_entities(
        self,
        accounts: List[LedgerEntity],
        categories: List[LedgerEntity],
        payees: List[LedgerEntity],
    ) -> None:
        """Store the entity lists and default every field still UNSET."""
        self.entities[SelectionField.ACCOUNT] = list(accounts)
        self.entities[SelectionField.CATEGORY] = list(categories)
        self.entities[SelectionField.PAYEE] = list(payees)

        for field in SelectionField:
            selection = self._fields[field]
            if selection.state is not SelectionState.UNSET or selection.value:
                continue
            default_id = self.default_id(field)
            if default_id:
                self._fields[field] = FieldSelection(default_id, SelectionState.DEFAULTED)
                logger.debug(f"Defaulted {field.value} selection to {default_id}")

    async def load_from_gateway(self) -> bool:
        """
        Fetch accounts, categories and payees and apply defaults.

        Returns:
            False if any listing failed (error is stored, lists are left as they were).
        """
        try:
            accounts = await self.gateway.list_accounts()
            categories = await self.gateway.list_categories()
            payees = await self.gateway.list_payees()
        except Exception as e:
            logger.warning(f"Failed to load quick-entry entities: {e}")
            self.error = str(e)
            return False

        self.load_entities(accounts, categories, payees)
        return True

    def default_id(self, field: SelectionField) -> Optional[str]:
        return default_entity_id(self.entities[field])

    # --- selection ---

    def selection(self, field: SelectionField) -> FieldSelection:
        return replace(self._fields[field])

    @property
    def account_id(self) -> str:
        return self._fields[SelectionField.ACCOUNT].value

    @property
    def category_id(self) -> str:
        return self._fields[SelectionField.CATEGORY].value

    @property
    def payee_id(self) -> str:
        return self._fields[SelectionField.PAYEE].value

    def select(self, field: SelectionField, entity_id: str) -> None:
        """Explicit user choice; wins over inference until reset_selection()."""
        self._fields[field] = FieldSelection(entity_id or "", SelectionState.USER_SET)

    def select_account(self, account_id: str) -> None:
        self.select(SelectionField.ACCOUNT, account_id)

    def select_category(self, category_id: str) -> None:
        self.select(SelectionField.CATEGORY, category_id)

    def select_payee(self, payee_id: str) -> None:
        self.select(SelectionField.PAYEE, payee_id)

    def apply_inference(self, inferred: InferredIds) -> None:
        """Overwrite non-user-set fields with inferred ids that are known entities."""
        candidates = {
            SelectionField.ACCOUNT: inferred.account_id,
            SelectionField.CATEGORY: inferred.category_id,
            SelectionField.PAYEE: inferred.payee_id,
        }
        for field, entity_id in candidates.items():
            if not entity_id:
                continue
            if self._fields[field].state is SelectionState.USER_SET:
                continue
            if not any(entity.id == entity_id for entity in self.entities[field]):
                continue
            self._fields[field] = FieldSelection(entity_id, SelectionState.INFERRED)

    def reset_selection(self) -> None:
        """Return every field to its default (or UNSET when nothing is loaded)."""
        for field in SelectionField:
            default_id = self.default_id(field)
            if default_id:
                self._fields[field] = FieldSelection(default_id, SelectionState.DEFAULTED)
            else:
                self._fields[field] = FieldSelection()

    # --- commit ---

    def build_payload(self, amount: float) -> Dict[str, Any]:
        """
        Creation payload for the current selection.

        Empty fields fall back to the defaults; payee_id is only present
        when non-empty.
        """
        account_id = self.account_id or self.default_id(SelectionField.ACCOUNT) or ""
        category_id = self.category_id or self.default_id(SelectionField.CATEGORY) or None
        payee_id = self.payee_id or self.default_id(SelectionField.PAYEE)

        payload: Dict[str, Any] = {
            "value": float(amount),
            "account_id": account_id,
            "category_id": category_id,
            "date": self._clock().isoformat(),
        }
        if payee_id:
            payload["payee_id"] = payee_id
        return payload

    async def create_transaction(self, amount: float) -> CommitResult:
        """Commit `amount` as a transaction with the current selection."""
        if self.creating:
            return CommitResult(status="invalid", message="A transaction is already being created")

        if not _is_finite_number(amount):
            return self._invalid("Invalid amount")

        payload = self.build_payload(amount)
        if not payload["account_id"]:
            return self._invalid("No account available")

        self.creating = True
        try:
            created = await self.gateway.create_transaction(payload)
        except RemoteUnavailable as e:
            return await self._handle_unreachable(payload, e)
        except Exception as e:
            self.error = str(e)
            logger.error(f"Failed to create quick-entry transaction: {e}")
            return CommitResult(status="error", message=self.error, payload=payload)
        finally:
            self.creating = False

        transaction_id = str(created.get("id")) if created.get("id") else None
        self.error = None
        result = CommitResult(
            status="created",
            transaction_id=transaction_id,
            message="Transaction added",
            payload=payload,
        )
        logger.info(f"Quick-entry transaction created: id={transaction_id}")

        self._notify(CommitNotification(
            message="Transaction added",
            action_label="View" if transaction_id else None,
            action_href=f"/transactions/{transaction_id}/edit" if transaction_id else None,
        ))
        self._finish(result)
        return result

    async def _handle_unreachable(self, payload: Dict[str, Any], error: Exception) -> CommitResult:
        if self.queue is None:
            self.error = str(error)
            await self._report_unreachable()
            return CommitResult(status="error", message=self.error, payload=payload)

        try:
            queued_id = await self.queue.enqueue(MUTATION_NAMES["CREATE_TRANSACTION"], payload)
        except QueueFull as e:
            self.error = f"Offline: transaction not saved. {e}"
            logger.warning("Backend unreachable and offline queue full, transaction dropped")
            await self._report_unreachable()
            return CommitResult(status="error", message=self.error, payload=payload)

        # Reported after the enqueue so the monitor's queue size includes it
        await self._report_unreachable()
        self.error = None
        result = CommitResult(
            status="queued",
            queued_id=queued_id,
            message="Offline: transaction queued and will sync when back online",
            payload=payload,
        )
        logger.info(f"Backend unreachable, quick-entry transaction queued as {queued_id}")

        self._notify(CommitNotification(message=result.message))
        self._finish(result)
        return result

    async def _report_unreachable(self) -> None:
        if self.on_unreachable is None:
            return
        try:
            await self.on_unreachable()
        except Exception as e:
            logger.error(f"on_unreachable callback failed: {e}", exc_info=True)

    def _invalid(self, message: str) -> CommitResult:
        self.error = message
        return CommitResult(status="invalid", message=message)

    def _finish(self, result: CommitResult) -> None:
        self.calculator.reset()
        self.reset_selection()
        if self.on_committed is not None:
            try:
                self.on_committed(result)
            except Exception as e:
                logger.error(f"on_committed callback failed: {e}", exc_info=True)

    def _notify(self, notification: CommitNotification) -> None:
        if self.on_notify is None:
            return
        try:
            self.on_notify(notification)
        except Exception as e:
            logger.error(f"Notification callback failed: {e}", exc_info=True)
