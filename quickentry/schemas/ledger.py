"""
Pydantic schemas for the ledger entities the quick-entry core reads.

Accounts, categories and payees are owned by the wider application; the
core only needs their id, a display name and the default flag.
"""

from typing import Optional

from pydantic import BaseModel, Field


class LedgerEntity(BaseModel):
    """An account, category or payee as listed for the quick-entry pickers."""
    id: str = Field(..., description="Entity UUID")
    name: str = Field("", description="Display name")
    is_default: bool = Field(
        False,
        description="True for the entity pre-selected when nothing else applies"
    )


class UsageInferenceResult(BaseModel):
    """
    Most frequent account / category / payee combination used with an amount.

    Computed per lookup, never stored.
    """
    account_id: Optional[str] = Field(None, description="Most used account UUID")
    payee_id: Optional[str] = Field(None, description="Most used payee UUID")
    category_id: Optional[str] = Field(None, description="Most used category UUID")
    count: int = Field(
        0,
        description="Number of matching historical transactions",
        ge=0
    )


class TopUsedValue(BaseModel):
    """An amount frequently entered in the lookback window (quick-select chip)."""
    value: float = Field(..., description="Transaction amount")
    count: int = Field(..., description="Times this amount was used", ge=0)
