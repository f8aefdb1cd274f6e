from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from .base import BaseDBManager
from ..errors import DuplicateReference
from ..models.audit import AuditEvent
from ..models.base import utcnow
from ..models.document import StoredDocument
from ..models.ledger import LedgerEntry
from ..models.payment import PaymentRequest, PaymentStatus
from ..models.user import ApprovalStatus, UserAccount, UserRole


class InMemoryDBManager(BaseDBManager):
    """
    Simple in-memory implementation used for tests and local development.
    NOT suitable for production, but exercises the abstraction and services.

    Primitives never await between their read and their write, so on a
    single event loop each one is atomic. Stored models are copied on the
    way in and out so callers cannot mutate state behind the manager's back.
    """

    def __init__(self) -> None:
        self._users: Dict[str, UserAccount] = {}
        self._payments: Dict[str, PaymentRequest] = {}
        self._documents: Dict[str, StoredDocument] = {}
        self._audit: List[AuditEvent] = []
        self._id_counter: int = 0

    def _next_id(self) -> str:
        self._id_counter += 1
        return str(self._id_counter)

    @staticmethod
    def _copy(model):
        return model.model_copy(deep=True) if model is not None else None

    # User operations
    async def add_user(self, user: UserAccount) -> UserAccount:
        if any(u.email == user.email for u in self._users.values()):
            raise DuplicateReference("User already exists with this email")
        if user.id is None:
            user.id = self._next_id()
        self._users[user.id] = self._copy(user)
        return user

    async def get_user(self, user_id: str) -> Optional[UserAccount]:
        return self._copy(self._users.get(user_id))

    async def get_user_by_email(self, email: str) -> Optional[UserAccount]:
        for user in self._users.values():
            if user.email == email:
                return self._copy(user)
        return None

    async def list_users(
        self,
        role: Optional[UserRole] = None,
        approval_status: Optional[ApprovalStatus] = None,
    ) -> Iterable[UserAccount]:
        users = [
            u
            for u in self._users.values()
            if (role is None or u.role == role)
            and (approval_status is None or u.approval_status == approval_status)
        ]
        users.sort(key=lambda u: u.created_at, reverse=True)
        return [self._copy(u) for u in users]

    async def update_user_fields(
        self, user_id: str, fields: Dict[str, Any]
    ) -> Optional[UserAccount]:
        user = self._users.get(user_id)
        if user is None:
            return None
        updated = UserAccount.model_validate(
            {**user.model_dump(), **fields, "updated_at": utcnow()}
        )
        self._users[user_id] = updated
        return self._copy(updated)

    # Credit account primitives
    async def apply_credit_usage(
        self, user_id: str, cost: int, entry: LedgerEntry, now: datetime
    ) -> Optional[UserAccount]:
        user = self._users.get(user_id)
        if user is None:
            return None
        account = user.credit
        if account.expiry is None or account.expiry <= now or account.balance < cost:
            return None
        account.balance -= cost
        account.history.append(entry.model_copy())
        return self._copy(user)

    async def apply_credit_purchase(
        self,
        user_id: str,
        credits: int,
        entry: LedgerEntry,
        expected_expiry: Optional[datetime],
        new_expiry: datetime,
    ) -> Optional[UserAccount]:
        user = self._users.get(user_id)
        if user is None:
            return None
        account = user.credit
        if account.expiry != expected_expiry:
            return None
        account.balance += credits
        account.expiry = new_expiry
        account.history.append(entry.model_copy())
        return self._copy(user)

    # Payment operations
    async def add_payment(self, payment: PaymentRequest) -> PaymentRequest:
        if any(
            p.transaction_id == payment.transaction_id for p in self._payments.values()
        ):
            raise DuplicateReference()
        if payment.id is None:
            payment.id = self._next_id()
        self._payments[payment.id] = self._copy(payment)
        return payment

    async def get_payment(self, payment_id: str) -> Optional[PaymentRequest]:
        return self._copy(self._payments.get(payment_id))

    async def get_payment_by_transaction_id(
        self, transaction_id: str
    ) -> Optional[PaymentRequest]:
        for payment in self._payments.values():
            if payment.transaction_id == transaction_id:
                return self._copy(payment)
        return None

    async def list_payments(
        self,
        status: Optional[PaymentStatus] = None,
        user_id: Optional[str] = None,
    ) -> Iterable[PaymentRequest]:
        payments = [
            p
            for p in self._payments.values()
            if (status is None or p.status == status)
            and (user_id is None or p.user_id == user_id)
        ]
        # Ids are monotonically increasing, which breaks created_at ties.
        payments.sort(key=lambda p: (p.created_at, int(p.id or 0)), reverse=True)
        return [self._copy(p) for p in payments]

    async def transition_payment(
        self, payment_id: str, fields: Dict[str, Any]
    ) -> Optional[PaymentRequest]:
        payment = self._payments.get(payment_id)
        if payment is None or payment.status != PaymentStatus.PENDING:
            return None
        updated = PaymentRequest.model_validate({**payment.model_dump(), **fields})
        self._payments[payment_id] = updated
        return self._copy(updated)

    # Documents
    async def add_document(self, document: StoredDocument) -> StoredDocument:
        if document.id is None:
            document.id = self._next_id()
        self._documents[document.id] = self._copy(document)
        return document

    async def get_document(self, document_id: str) -> Optional[StoredDocument]:
        return self._copy(self._documents.get(document_id))

    async def list_documents(self) -> Iterable[StoredDocument]:
        docs = sorted(
            self._documents.values(),
            key=lambda d: (d.created_at, int(d.id or 0)),
            reverse=True,
        )
        return [self._copy(d) for d in docs]

    async def delete_document(self, document_id: str) -> Optional[StoredDocument]:
        return self._documents.pop(document_id, None)

    async def increment_document_downloads(
        self, document_id: str
    ) -> Optional[StoredDocument]:
        document = self._documents.get(document_id)
        if document is None:
            return None
        document.downloads += 1
        return self._copy(document)

    async def adjust_document_favorites(
        self, document_id: str, delta: int
    ) -> Optional[StoredDocument]:
        document = self._documents.get(document_id)
        if document is None:
            return None
        document.favorites_count = max(0, document.favorites_count + delta)
        return self._copy(document)

    async def list_document_tags(self) -> List[str]:
        return sorted({t for d in self._documents.values() for t in d.tags if t})

    async def list_similar_documents(
        self, document_id: str, tags: List[str], limit: int
    ) -> Iterable[StoredDocument]:
        wanted = set(tags)
        docs = [
            d
            for d in await self.list_documents()
            if d.id != document_id and (not wanted or wanted.intersection(d.tags))
        ]
        return docs[:limit]

    # Favorites
    async def add_favorite(self, user_id: str, document_id: str) -> bool:
        user = self._users.get(user_id)
        if user is None or document_id in user.favorites:
            return False
        user.favorites.append(document_id)
        user.updated_at = utcnow()
        return True

    async def remove_favorite(self, user_id: str, document_id: str) -> bool:
        user = self._users.get(user_id)
        if user is None or document_id not in user.favorites:
            return False
        user.favorites.remove(document_id)
        user.updated_at = utcnow()
        return True

    # Audit
    async def add_audit_event(self, event: AuditEvent) -> AuditEvent:
        if event.id is None:
            event.id = self._next_id()
        self._audit.append(self._copy(event))
        return event

    @property
    def audit_events(self) -> List[AuditEvent]:
        return list(self._audit)
