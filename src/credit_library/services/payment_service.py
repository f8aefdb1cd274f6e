from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional

from ..db.base import BaseDBManager
from ..errors import AlreadyDecided, DuplicateReference, InvalidInput, NotFound
from ..logging.audit_logger import AuditLogger
from ..models.api_models import PaymentSubmission
from ..models.base import utcnow
from ..models.payment import PaymentRequest, PaymentStatus
from .credit_ledger import CreditLedger


logger = logging.getLogger(__name__)


class PaymentService:
    """
    Manual payment claims and their one-time admin decision.

    A payment leaves `pending` exactly once. The pending -> approved claim
    is a conditional store update, so when two admins race only one of
    them goes on to credit the owner's account.
    """

    def __init__(
        self,
        db: BaseDBManager,
        ledger: CreditLedger,
        audit: AuditLogger,
        plan_months: int = 1,
        default_rejection_reason: str = "Payment rejected by admin",
    ) -> None:
        self._db = db
        self._ledger = ledger
        self._audit = audit
        self._plan_months = plan_months
        self._default_rejection_reason = default_rejection_reason

    async def submit(
        self, owner_id: str, submission: PaymentSubmission
    ) -> PaymentRequest:
        if not all(
            [
                submission.mobile_number,
                submission.transaction_id,
                submission.amount,
                submission.plan_name,
                submission.credits,
                submission.reference,
            ]
        ):
            raise InvalidInput("All fields are required")
        if submission.credits is not None and submission.credits < 0:
            raise InvalidInput("credits must not be negative")

        existing = await self._db.get_payment_by_transaction_id(submission.transaction_id)  # type: ignore[arg-type]
        if existing is not None:
            raise DuplicateReference()

        payment = PaymentRequest(
            user_id=owner_id,
            mobile_number=submission.mobile_number,  # type: ignore[arg-type]
            transaction_id=submission.transaction_id,  # type: ignore[arg-type]
            amount=submission.amount,  # type: ignore[arg-type]
            plan_name=submission.plan_name,  # type: ignore[arg-type]
            credits=submission.credits,  # type: ignore[arg-type]
            reference=submission.reference,  # type: ignore[arg-type]
        )
        # The store enforces uniqueness too, covering concurrent submissions.
        payment = await self._db.add_payment(payment)

        await self._audit.log_transaction(
            user_id=owner_id,
            message="Payment submitted",
            details={
                "payment_id": payment.id,
                "transaction_id": payment.transaction_id,
                "plan_name": payment.plan_name,
                "credits": payment.credits,
            },
        )
        return payment

    async def get(self, payment_id: str) -> PaymentRequest:
        payment = await self._db.get_payment(payment_id)
        if payment is None:
            raise NotFound("Payment not found")
        return payment

    async def _claim(self, payment_id: str, fields: dict) -> PaymentRequest:
        payment = await self.get(payment_id)
        if payment.status != PaymentStatus.PENDING:
            raise AlreadyDecided("Payment has already been processed")
        updated = await self._db.transition_payment(payment_id, fields)
        if updated is None:
            raise AlreadyDecided("Payment has already been processed")
        return updated

    async def approve(
        self, payment_id: str, admin_id: str, now: Optional[datetime] = None
    ) -> PaymentRequest:
        now = now or utcnow()
        payment = await self._claim(
            payment_id,
            {"status": PaymentStatus.APPROVED, "decided_by": admin_id, "decided_at": now},
        )

        owner = await self._db.get_user(payment.user_id)
        if owner is None:
            # The approval stands but no credits are granted anywhere.
            logger.warning(
                "Payment %s approved but owner %s no longer exists; no credits granted",
                payment.id,
                payment.user_id,
            )
            await self._audit.log_error(
                message="Approved payment has no owner; credits not granted",
                details={"payment_id": payment.id, "credits": payment.credits},
                user_id=payment.user_id,
            )
        else:
            await self._ledger.extend_and_credit(
                owner.id,  # type: ignore[arg-type]
                payment.credits,
                self._plan_months,
                f"{payment.plan_name} plan approved (TxID: {payment.transaction_id})",
                now=now,
                correlation_id=payment.id,
            )

        await self._audit.log_transaction(
            user_id=payment.user_id,
            message="Payment approved",
            details={"payment_id": payment.id, "admin_id": admin_id},
            correlation_id=payment.id,
        )
        return payment

    async def reject(
        self,
        payment_id: str,
        admin_id: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PaymentRequest:
        now = now or utcnow()
        payment = await self._claim(
            payment_id,
            {
                "status": PaymentStatus.REJECTED,
                "decided_by": admin_id,
                "decided_at": now,
                "rejection_reason": reason or self._default_rejection_reason,
            },
        )
        await self._audit.log_transaction(
            user_id=payment.user_id,
            message="Payment rejected",
            details={
                "payment_id": payment.id,
                "admin_id": admin_id,
                "reason": payment.rejection_reason,
            },
            correlation_id=payment.id,
        )
        return payment

    async def decide(
        self,
        payment_id: str,
        admin_id: str,
        status: str,
        reason: Optional[str] = None,
    ) -> PaymentRequest:
        if status == PaymentStatus.APPROVED:
            return await self.approve(payment_id, admin_id)
        if status == PaymentStatus.REJECTED:
            return await self.reject(payment_id, admin_id, reason)
        raise InvalidInput("Invalid status. Must be approved or rejected")

    async def list_payments(
        self, status: Optional[str] = None
    ) -> Iterable[PaymentRequest]:
        if status is not None:
            try:
                status = PaymentStatus(status)
            except ValueError as exc:
                raise InvalidInput(f"Unknown payment status: {status}") from exc
        return await self._db.list_payments(status=status)

    async def list_pending(self) -> Iterable[PaymentRequest]:
        return await self._db.list_payments(status=PaymentStatus.PENDING)

    async def list_for_user(self, user_id: str) -> Iterable[PaymentRequest]:
        return await self._db.list_payments(user_id=user_id)
