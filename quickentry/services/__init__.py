"""
Service layer for the quick-entry core.

Contains:
- The arithmetic entry machine (calculator keypad state)
- Debounced usage inference (most used account / category / payee for an amount)
- The offline mutation queue and its sync monitor
- The commit coordinator (selection state + create-transaction flow)
- Supabase-backed ledger collaborators
- Quick-entry sessions wiring the above together for one view
"""

from .calculator import CalculatorMachine, CalculatorState, handle_key
from .commit_coordinator import (
    SelectionField,
    SelectionState,
    TransactionCommitCoordinator,
)
from .inference_service import InferenceState, UsageInferenceDebouncer
from .offline_queue import OfflineMutationQueue
from .offline_sync import OfflineSyncMonitor
from .session import QuickEntrySession, SessionRegistry
from .transaction_service import LedgerGateway, SupabaseLedgerGateway

__all__ = [
    "CalculatorMachine",
    "CalculatorState",
    "handle_key",
    "SelectionField",
    "SelectionState",
    "TransactionCommitCoordinator",
    "InferenceState",
    "UsageInferenceDebouncer",
    "OfflineMutationQueue",
    "OfflineSyncMonitor",
    "QuickEntrySession",
    "SessionRegistry",
    "LedgerGateway",
    "SupabaseLedgerGateway",
]
