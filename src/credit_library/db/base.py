from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from ..models.audit import AuditEvent
from ..models.document import StoredDocument
from ..models.ledger import LedgerEntry
from ..models.payment import PaymentRequest, PaymentStatus
from ..models.user import ApprovalStatus, UserAccount, UserRole


class BaseDBManager(ABC):
    """
    DB-agnostic async manager interface.

    Concrete implementations (MongoDB, in-memory) implement these methods.
    Credit balances are never written by whole-document replacement: the
    `apply_credit_*` primitives update the embedded credit account of a
    single user atomically and return None when their guard does not hold,
    leaving the caller to re-read and decide.
    """

    async def close(self) -> None:
        """Release backend resources. No-op by default."""

    # User operations
    @abstractmethod
    async def add_user(self, user: UserAccount) -> UserAccount: ...

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UserAccount]: ...

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[UserAccount]: ...

    @abstractmethod
    async def list_users(
        self,
        role: Optional[UserRole] = None,
        approval_status: Optional[ApprovalStatus] = None,
    ) -> Iterable[UserAccount]: ...

    @abstractmethod
    async def update_user_fields(
        self, user_id: str, fields: Dict[str, Any]
    ) -> Optional[UserAccount]:
        """
        Set top-level, non-credit fields on a user. Returns the updated user,
        or None if it does not exist.
        """
        ...

    # Credit account primitives
    @abstractmethod
    async def apply_credit_usage(
        self, user_id: str, cost: int, entry: LedgerEntry, now: datetime
    ) -> Optional[UserAccount]:
        """
        Decrement the balance by `cost` and append `entry`, only if the
        balance is at least `cost` and the expiry lies after `now`.
        """
        ...

    @abstractmethod
    async def apply_credit_purchase(
        self,
        user_id: str,
        credits: int,
        entry: LedgerEntry,
        expected_expiry: Optional[datetime],
        new_expiry: datetime,
    ) -> Optional[UserAccount]:
        """
        Increment the balance by `credits`, append `entry` and set the expiry
        to `new_expiry`, only if the stored expiry still equals
        `expected_expiry` (compare-and-set on the value the caller read).
        """
        ...

    # Payment operations
    @abstractmethod
    async def add_payment(self, payment: PaymentRequest) -> PaymentRequest:
        """Insert a payment. Raises DuplicateReference on a reused transaction id."""
        ...

    @abstractmethod
    async def get_payment(self, payment_id: str) -> Optional[PaymentRequest]: ...

    @abstractmethod
    async def get_payment_by_transaction_id(
        self, transaction_id: str
    ) -> Optional[PaymentRequest]: ...

    @abstractmethod
    async def list_payments(
        self,
        status: Optional[PaymentStatus] = None,
        user_id: Optional[str] = None,
    ) -> Iterable[PaymentRequest]:
        """Payments matching the filters, newest first."""
        ...

    @abstractmethod
    async def transition_payment(
        self, payment_id: str, fields: Dict[str, Any]
    ) -> Optional[PaymentRequest]:
        """
        Apply `fields` to a payment only if it is still pending.
        Returns the updated payment, or None if it was not pending (or missing).
        """
        ...

    # Documents
    @abstractmethod
    async def add_document(self, document: StoredDocument) -> StoredDocument: ...

    @abstractmethod
    async def get_document(self, document_id: str) -> Optional[StoredDocument]: ...

    @abstractmethod
    async def list_documents(self) -> Iterable[StoredDocument]: ...

    @abstractmethod
    async def delete_document(self, document_id: str) -> Optional[StoredDocument]:
        """Remove a document record and return what was removed."""
        ...

    @abstractmethod
    async def increment_document_downloads(
        self, document_id: str
    ) -> Optional[StoredDocument]: ...

    @abstractmethod
    async def adjust_document_favorites(
        self, document_id: str, delta: int
    ) -> Optional[StoredDocument]:
        """Shift `favorites_count` by `delta`, never below zero."""
        ...

    @abstractmethod
    async def list_document_tags(self) -> List[str]:
        """Distinct non-empty tags across all documents, sorted."""
        ...

    @abstractmethod
    async def list_similar_documents(
        self, document_id: str, tags: List[str], limit: int
    ) -> Iterable[StoredDocument]:
        """Newest documents other than `document_id` sharing any of `tags` (any document when `tags` is empty)."""
        ...

    # Favorites
    @abstractmethod
    async def add_favorite(self, user_id: str, document_id: str) -> bool:
        """Add `document_id` to the user's favorites unless present. True if it was added."""
        ...

    @abstractmethod
    async def remove_favorite(self, user_id: str, document_id: str) -> bool:
        """Remove `document_id` from the user's favorites if present. True if it was removed."""
        ...

    # Audit
    @abstractmethod
    async def add_audit_event(self, event: AuditEvent) -> AuditEvent: ...
