from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import ClassVar, List, Optional

from pydantic import Field

from .base import DBSerializableModel, utcnow
from .ledger import CreditAccount


class UserRole(str, Enum):
    STUDENT = "student"
    MENTOR = "mentor"
    ADMIN = "admin"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class UserAccount(DBSerializableModel):
    """
    User document. The credit account is embedded and owned exclusively
    by this user; it is only mutated through the ledger's atomic primitives.
    """

    collection_name: ClassVar[str] = "users"

    id: Optional[str] = Field(default=None)
    name: str
    email: str
    role: UserRole = UserRole.STUDENT
    approval_status: ApprovalStatus = ApprovalStatus.APPROVED
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    is_active: bool = True
    credit: CreditAccount = Field(default_factory=CreditAccount)
    favorites: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def is_mentor_approved(self) -> bool:
        if self.role != UserRole.MENTOR:
            return True
        return self.approval_status == ApprovalStatus.APPROVED
