from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Type, TypeVar
from uuid import uuid4

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from .base import BaseDBManager
from ..errors import DuplicateReference
from ..models.audit import AuditEvent
from ..models.base import DBSerializableModel, utcnow
from ..models.document import StoredDocument
from ..models.ledger import LedgerEntry
from ..models.payment import PaymentRequest, PaymentStatus
from ..models.user import ApprovalStatus, UserAccount, UserRole


TModel = TypeVar("TModel", bound=DBSerializableModel)


class MongoDBManager(BaseDBManager):
    """
    MongoDB implementation of BaseDBManager using motor (async driver).

    IDs are stored as string-based `_id` fields and mirrored in the `id`
    attribute of each Pydantic model, which keeps the rest of the system
    agnostic of MongoDB specifics.

    Credit changes are single-document `find_one_and_update` calls: the
    balance moves with `$inc` and the history with `$push`, and the guard is
    part of the filter, so concurrent deductions and approvals on the same
    user never overwrite each other.
    """

    def __init__(
        self, database: AsyncIOMotorDatabase, client: Optional[AsyncIOMotorClient] = None
    ) -> None:
        self._db = database
        self._client = client

    @classmethod
    def from_client_uri(cls, uri: str, db_name: str) -> "MongoDBManager":
        client = AsyncIOMotorClient(uri, tz_aware=True)
        return cls(client[db_name], client=client)

    async def ensure_indexes(self) -> None:
        payments = self._db[PaymentRequest.collection_name]
        await payments.create_index("transaction_id", unique=True)
        await payments.create_index([("status", ASCENDING), ("created_at", DESCENDING)])
        await payments.create_index("user_id")
        users = self._db[UserAccount.collection_name]
        await users.create_index("email", unique=True)
        await users.create_index([("role", ASCENDING), ("approval_status", ASCENDING)])

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()

    # Helper utilities
    @staticmethod
    def _prepare_insert(model: TModel) -> Dict[str, Any]:
        data = model.serialize_for_db()
        model_id = getattr(model, "id", None)
        if not model_id:
            model_id = uuid4().hex
            setattr(model, "id", model_id)
            data["id"] = model_id
        data["_id"] = model_id
        return data

    @staticmethod
    def _plain(fields: Mapping[str, Any]) -> Dict[str, Any]:
        return {k: v.value if isinstance(v, Enum) else v for k, v in fields.items()}

    @staticmethod
    def _decode(model_cls: Type[TModel], doc: Optional[Mapping[str, Any]]) -> Optional[TModel]:
        if doc is None:
            return None
        data = dict(doc)
        if "_id" in data and "id" not in data:
            data["id"] = str(data["_id"])
        data.pop("_id", None)
        return model_cls.model_validate(data)

    async def _find_many(
        self, model_cls: Type[TModel], query: Dict[str, Any]
    ) -> list[TModel]:
        col = self._db[model_cls.collection_name]
        cursor = col.find(query).sort("created_at", DESCENDING)
        docs = await cursor.to_list(length=None)
        return [self._decode(model_cls, d) for d in docs if d is not None]  # type: ignore[misc]

    # User operations
    async def add_user(self, user: UserAccount) -> UserAccount:
        col = self._db[UserAccount.collection_name]
        data = self._prepare_insert(user)
        try:
            await col.insert_one(data)
        except DuplicateKeyError as exc:
            raise DuplicateReference("User already exists with this email") from exc
        return user

    async def get_user(self, user_id: str) -> Optional[UserAccount]:
        col = self._db[UserAccount.collection_name]
        doc = await col.find_one({"_id": user_id})
        return self._decode(UserAccount, doc)

    async def get_user_by_email(self, email: str) -> Optional[UserAccount]:
        col = self._db[UserAccount.collection_name]
        doc = await col.find_one({"email": email})
        return self._decode(UserAccount, doc)

    async def list_users(
        self,
        role: Optional[UserRole] = None,
        approval_status: Optional[ApprovalStatus] = None,
    ) -> Iterable[UserAccount]:
        query: Dict[str, Any] = {}
        if role is not None:
            query["role"] = UserRole(role).value
        if approval_status is not None:
            query["approval_status"] = ApprovalStatus(approval_status).value
        return await self._find_many(UserAccount, query)

    async def update_user_fields(
        self, user_id: str, fields: Dict[str, Any]
    ) -> Optional[UserAccount]:
        col = self._db[UserAccount.collection_name]
        update = self._plain(fields)
        update["updated_at"] = utcnow()
        doc = await col.find_one_and_update(
            {"_id": user_id},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
        )
        return self._decode(UserAccount, doc)

    # Credit account primitives
    async def apply_credit_usage(
        self, user_id: str, cost: int, entry: LedgerEntry, now: datetime
    ) -> Optional[UserAccount]:
        col = self._db[UserAccount.collection_name]
        doc = await col.find_one_and_update(
            {
                "_id": user_id,
                "credit.balance": {"$gte": cost},
                "credit.expiry": {"$gt": now},
            },
            {
                "$inc": {"credit.balance": -cost},
                "$push": {"credit.history": entry.model_dump()},
                "$set": {"updated_at": utcnow()},
            },
            return_document=ReturnDocument.AFTER,
        )
        return self._decode(UserAccount, doc)

    async def apply_credit_purchase(
        self,
        user_id: str,
        credits: int,
        entry: LedgerEntry,
        expected_expiry: Optional[datetime],
        new_expiry: datetime,
    ) -> Optional[UserAccount]:
        col = self._db[UserAccount.collection_name]
        # {"credit.expiry": None} also matches documents without the field.
        doc = await col.find_one_and_update(
            {"_id": user_id, "credit.expiry": expected_expiry},
            {
                "$inc": {"credit.balance": credits},
                "$push": {"credit.history": entry.model_dump()},
                "$set": {"credit.expiry": new_expiry, "updated_at": utcnow()},
            },
            return_document=ReturnDocument.AFTER,
        )
        return self._decode(UserAccount, doc)

    # Payment operations
    async def add_payment(self, payment: PaymentRequest) -> PaymentRequest:
        col = self._db[PaymentRequest.collection_name]
        data = self._prepare_insert(payment)
        try:
            await col.insert_one(data)
        except DuplicateKeyError as exc:
            raise DuplicateReference() from exc
        return payment

    async def get_payment(self, payment_id: str) -> Optional[PaymentRequest]:
        col = self._db[PaymentRequest.collection_name]
        doc = await col.find_one({"_id": payment_id})
        return self._decode(PaymentRequest, doc)

    async def get_payment_by_transaction_id(
        self, transaction_id: str
    ) -> Optional[PaymentRequest]:
        col = self._db[PaymentRequest.collection_name]
        doc = await col.find_one({"transaction_id": transaction_id})
        return self._decode(PaymentRequest, doc)

    async def list_payments(
        self,
        status: Optional[PaymentStatus] = None,
        user_id: Optional[str] = None,
    ) -> Iterable[PaymentRequest]:
        query: Dict[str, Any] = {}
        if status is not None:
            query["status"] = PaymentStatus(status).value
        if user_id is not None:
            query["user_id"] = user_id
        return await self._find_many(PaymentRequest, query)

    async def transition_payment(
        self, payment_id: str, fields: Dict[str, Any]
    ) -> Optional[PaymentRequest]:
        col = self._db[PaymentRequest.collection_name]
        doc = await col.find_one_and_update(
            {"_id": payment_id, "status": PaymentStatus.PENDING.value},
            {"$set": self._plain(fields)},
            return_document=ReturnDocument.AFTER,
        )
        return self._decode(PaymentRequest, doc)

    # Documents
    async def add_document(self, document: StoredDocument) -> StoredDocument:
        col = self._db[StoredDocument.collection_name]
        data = self._prepare_insert(document)
        await col.insert_one(data)
        return document

    async def get_document(self, document_id: str) -> Optional[StoredDocument]:
        col = self._db[StoredDocument.collection_name]
        doc = await col.find_one({"_id": document_id})
        return self._decode(StoredDocument, doc)

    async def list_documents(self) -> Iterable[StoredDocument]:
        return await self._find_many(StoredDocument, {})

    async def delete_document(self, document_id: str) -> Optional[StoredDocument]:
        col = self._db[StoredDocument.collection_name]
        doc = await col.find_one_and_delete({"_id": document_id})
        return self._decode(StoredDocument, doc)

    async def increment_document_downloads(
        self, document_id: str
    ) -> Optional[StoredDocument]:
        col = self._db[StoredDocument.collection_name]
        doc = await col.find_one_and_update(
            {"_id": document_id},
            {"$inc": {"downloads": 1}},
            return_document=ReturnDocument.AFTER,
        )
        return self._decode(StoredDocument, doc)

    async def adjust_document_favorites(
        self, document_id: str, delta: int
    ) -> Optional[StoredDocument]:
        col = self._db[StoredDocument.collection_name]
        query: Dict[str, Any] = {"_id": document_id}
        if delta < 0:
            query["favorites_count"] = {"$gte": -delta}
        doc = await col.find_one_and_update(
            query,
            {"$inc": {"favorites_count": delta}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None and delta < 0:
            # Already at zero; leave the count untouched.
            doc = await col.find_one({"_id": document_id})
        return self._decode(StoredDocument, doc)

    async def list_document_tags(self) -> List[str]:
        col = self._db[StoredDocument.collection_name]
        tags = await col.distinct("tags")
        return sorted(t for t in tags if t)

    async def list_similar_documents(
        self, document_id: str, tags: List[str], limit: int
    ) -> Iterable[StoredDocument]:
        col = self._db[StoredDocument.collection_name]
        query: Dict[str, Any] = {"_id": {"$ne": document_id}}
        if tags:
            query["tags"] = {"$in": list(tags)}
        cursor = col.find(query).sort("created_at", DESCENDING).limit(limit)
        docs = await cursor.to_list(length=limit)
        return [self._decode(StoredDocument, d) for d in docs if d is not None]  # type: ignore[misc]

    # Favorites
    async def add_favorite(self, user_id: str, document_id: str) -> bool:
        col = self._db[UserAccount.collection_name]
        result = await col.update_one(
            {"_id": user_id, "favorites": {"$ne": document_id}},
            {"$push": {"favorites": document_id}, "$set": {"updated_at": utcnow()}},
        )
        return result.modified_count == 1

    async def remove_favorite(self, user_id: str, document_id: str) -> bool:
        col = self._db[UserAccount.collection_name]
        result = await col.update_one(
            {"_id": user_id, "favorites": document_id},
            {"$pull": {"favorites": document_id}, "$set": {"updated_at": utcnow()}},
        )
        return result.modified_count == 1

    # Audit
    async def add_audit_event(self, event: AuditEvent) -> AuditEvent:
        col = self._db[AuditEvent.collection_name]
        data = self._prepare_insert(event)
        await col.insert_one(data)
        return event
