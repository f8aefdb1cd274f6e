from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .base import utcnow


class LedgerEntryKind(str, Enum):
    PURCHASE = "purchase"
    USAGE = "usage"
    REFUND = "refund"


class LedgerEntry(BaseModel):
    """
    Immutable record of one balance change on a credit account.

    `amount` is signed and equals exactly the delta applied to the balance
    by the same operation.
    """

    model_config = ConfigDict(use_enum_values=True, frozen=True)

    amount: int
    kind: LedgerEntryKind
    description: str = ""
    occurred_at: datetime = Field(default_factory=utcnow)


class CreditAccount(BaseModel):
    """Spendable balance embedded in a user document."""

    balance: int = Field(default=0, ge=0)
    expiry: Optional[datetime] = Field(
        default=None,
        description="Credits are usable only while this lies in the future.",
    )
    history: List[LedgerEntry] = Field(default_factory=list)


class CreditSummary(BaseModel):
    user_id: str
    balance: int
    expiry: Optional[datetime] = None
    active: bool
    history: List[LedgerEntry] = Field(default_factory=list)
