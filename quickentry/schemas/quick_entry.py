"""
Pydantic schemas for quick entry: commit results and the session API.

The session endpoints drive a server-side QuickEntrySession; a thin client
sends keypad events and renders the returned snapshot.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from quickentry.schemas.ledger import LedgerEntity, TopUsedValue

CommitStatus = Literal["created", "queued", "invalid", "error"]
FieldState = Literal["unset", "defaulted", "inferred", "user_set"]


# --- Commit models ---

class CommitNotification(BaseModel):
    """User-facing notification emitted after a commit."""
    message: str = Field(..., examples=["Transaction added"])
    action_label: Optional[str] = Field(None, examples=["View"])
    action_href: Optional[str] = Field(None, examples=["/transactions/123/edit"])


class CommitResult(BaseModel):
    """Outcome of committing the calculator value as a transaction."""
    status: CommitStatus = Field(..., description="created, queued, invalid or error")
    transaction_id: Optional[str] = Field(None, description="Created transaction UUID")
    queued_id: Optional[str] = Field(
        None,
        description="Offline queue entry id when the commit was deferred"
    )
    message: str = Field(..., description="User-facing message")
    payload: Optional[Dict[str, Any]] = Field(
        None,
        description="Creation payload that was sent or queued"
    )


# --- Session view models ---

class FieldSelectionView(BaseModel):
    """One selection field and how it got its value."""
    id: str = Field("", description="Selected entity UUID ('' when none)")
    state: FieldState = Field("unset")


class SelectionView(BaseModel):
    account: FieldSelectionView
    category: FieldSelectionView
    payee: FieldSelectionView


class CalculatorView(BaseModel):
    display: str = Field(..., examples=["42.50"])
    previous_value: Optional[float] = None
    operation: Optional[Literal["+", "-", "*", "/"]] = None
    waiting_for_new_value: bool = False
    show_amount: bool = False
    effective_amount: Optional[float] = Field(
        None,
        description="Amount a commit would use now (None when not a positive number)"
    )


class InferenceView(BaseModel):
    account_id: Optional[str] = None
    payee_id: Optional[str] = None
    category_id: Optional[str] = None
    count: int = 0
    loading: bool = False
    error: Optional[str] = None


class QuickEntrySessionResponse(BaseModel):
    """Full snapshot of a quick-entry session."""
    session_id: str
    calculator: CalculatorView
    selection: SelectionView
    inference: InferenceView
    accounts: List[LedgerEntity] = Field(default_factory=list)
    categories: List[LedgerEntity] = Field(default_factory=list)
    payees: List[LedgerEntity] = Field(default_factory=list)
    top_used_values: List[TopUsedValue] = Field(default_factory=list)
    creating: bool = False
    error: Optional[str] = None


# --- Requests ---

class QuickEntryEventRequest(BaseModel):
    """A keypad / keyboard event."""
    type: Literal["digit", "operator", "backspace", "equals", "clear", "value", "key"]
    value: Optional[str] = Field(
        None,
        description="Digit, operator, key name or literal amount depending on type",
        examples=["7", "+", "Enter", "42.5"]
    )


class SelectionUpdateRequest(BaseModel):
    """Explicit user selection; omitted fields are left as they are."""
    account_id: Optional[str] = None
    category_id: Optional[str] = None
    payee_id: Optional[str] = None


class CommitResponse(BaseModel):
    result: CommitResult
    session: QuickEntrySessionResponse


class QuickEntrySessionDeleteResponse(BaseModel):
    status: Literal["DELETED"] = "DELETED"
    session_id: str
    message: str = Field(..., examples=["Quick-entry session closed"])
