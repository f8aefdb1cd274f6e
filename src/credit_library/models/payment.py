from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import ClassVar, Optional

from pydantic import Field

from .base import DBSerializableModel, utcnow


class PaymentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PaymentRequest(DBSerializableModel):
    """
    A user's claim of an out-of-band mobile payment, awaiting admin review.

    `transaction_id` is the external reference and is unique across all
    requests regardless of status. Amount, plan and owner never change after
    creation; the decision fields are only set when leaving `pending`.
    """

    collection_name: ClassVar[str] = "payments"

    id: Optional[str] = Field(default=None)
    user_id: str
    mobile_number: str
    transaction_id: str
    amount: float
    plan_name: str
    credits: int
    reference: str
    status: PaymentStatus = PaymentStatus.PENDING
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
