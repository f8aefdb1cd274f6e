from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from ..db.base import BaseDBManager
from ..errors import AlreadyDecided, DuplicateReference, InvalidInput, NotFound
from ..logging.audit_logger import AuditLogger
from ..models.base import utcnow
from ..models.user import ApprovalStatus, UserAccount, UserRole


class UserService:
    """
    User registration and mentor approval.

    Mentors register as `pending` and can only act as mentors once an admin
    approves them. Students are approved on registration.
    """

    SELF_SERVICE_ROLES = (UserRole.STUDENT, UserRole.MENTOR)

    def __init__(self, db: BaseDBManager, audit: AuditLogger) -> None:
        self._db = db
        self._audit = audit

    async def register_user(self, name: str, email: str, role: str = "student") -> UserAccount:
        if role not in self.SELF_SERVICE_ROLES:
            raise InvalidInput("Invalid role. Must be student or mentor")
        if not name or len(name.strip()) < 2:
            raise InvalidInput("Name must be at least 2 characters")
        email = (email or "").strip().lower()
        if "@" not in email:
            raise InvalidInput("Please provide a valid email")
        if await self._db.get_user_by_email(email) is not None:
            raise DuplicateReference("User already exists with this email")

        user = UserAccount(
            name=name.strip(),
            email=email,
            role=UserRole(role),
            approval_status=(
                ApprovalStatus.PENDING if role == UserRole.MENTOR else ApprovalStatus.APPROVED
            ),
        )
        return await self._db.add_user(user)

    async def get_user(self, user_id: str) -> UserAccount:
        user = await self._db.get_user(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    async def list_pending_mentors(self) -> Iterable[UserAccount]:
        return await self._db.list_users(
            role=UserRole.MENTOR, approval_status=ApprovalStatus.PENDING
        )

    async def _require_mentor(self, user_id: str) -> UserAccount:
        user = await self._db.get_user(user_id)
        if user is None:
            raise NotFound("Mentor not found")
        if user.role != UserRole.MENTOR:
            raise InvalidInput("User is not a mentor")
        return user

    async def approve_mentor(
        self, user_id: str, admin_id: str, now: Optional[datetime] = None
    ) -> UserAccount:
        mentor = await self._require_mentor(user_id)
        if mentor.approval_status == ApprovalStatus.APPROVED:
            raise AlreadyDecided("Mentor already approved")

        updated = await self._db.update_user_fields(
            user_id,
            {
                "approval_status": ApprovalStatus.APPROVED,
                "approved_by": admin_id,
                "approved_at": now or utcnow(),
                "rejection_reason": None,
            },
        )
        await self._audit.log_transaction(
            user_id=user_id,
            message="Mentor approved",
            details={"admin_id": admin_id},
        )
        return updated  # type: ignore[return-value]

    async def reject_mentor(
        self,
        user_id: str,
        admin_id: str,
        reason: Optional[str],
        now: Optional[datetime] = None,
    ) -> UserAccount:
        if not reason:
            raise InvalidInput("Please provide a rejection reason")
        await self._require_mentor(user_id)

        updated = await self._db.update_user_fields(
            user_id,
            {
                "approval_status": ApprovalStatus.REJECTED,
                "approved_by": admin_id,
                "approved_at": now or utcnow(),
                "rejection_reason": reason,
            },
        )
        await self._audit.log_transaction(
            user_id=user_id,
            message="Mentor rejected",
            details={"admin_id": admin_id, "reason": reason},
        )
        return updated  # type: ignore[return-value]

    async def approval_status(self, user_id: str) -> UserAccount:
        user = await self.get_user(user_id)
        if user.role != UserRole.MENTOR:
            raise InvalidInput("Only mentors can check approval status")
        return user
