from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Tuple

from dateutil.relativedelta import relativedelta

from ..db.base import BaseDBManager
from ..errors import (
    CreditExpired,
    CreditLibraryError,
    InfraFailure,
    InsufficientCredits,
    InvalidInput,
    NotFound,
)
from ..logging.audit_logger import AuditLogger
from ..models.base import utcnow
from ..models.ledger import CreditAccount, CreditSummary, LedgerEntry, LedgerEntryKind
from ..models.user import UserAccount


logger = logging.getLogger(__name__)

# Re-reads allowed when a guarded update loses to a concurrent writer.
MAX_UPDATE_ATTEMPTS = 5


def has_active_credit(account: CreditAccount, now: datetime) -> bool:
    return account.expiry is not None and account.expiry > now and account.balance > 0


def ensure_active(account: CreditAccount, cost: int, now: datetime) -> None:
    """
    Raise if `account` cannot pay `cost` at `now`.

    Expiry is checked before the balance: a lapsed account reports
    CreditExpired even when its nominal balance would cover the cost.
    """
    if account.expiry is None or account.expiry <= now:
        raise CreditExpired()
    if account.balance < cost:
        raise InsufficientCredits()


def add_months(base: datetime, months: int) -> datetime:
    """
    Calendar month addition. Month-end dates clamp to the last valid day
    of the target month (Jan 31 + 1 month -> Feb 28/29).
    """
    return base + relativedelta(months=months)


class CreditLedger:
    """
    Spendable balance and validity window of a user's credit account.

    Every change appends exactly one ledger entry whose amount equals the
    balance delta, and is applied through the storage manager's guarded
    atomic primitives.
    """

    def __init__(self, db: BaseDBManager, audit: AuditLogger) -> None:
        self._db = db
        self._audit = audit

    async def _require_user(self, user_id: str) -> UserAccount:
        user = await self._db.get_user(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    async def deduct(
        self,
        user_id: str,
        cost: int,
        description: str = "Usage",
        now: Optional[datetime] = None,
        correlation_id: Optional[str] = None,
    ) -> int:
        """
        Charge `cost` credits and return the new balance.

        Raises CreditExpired or InsufficientCredits without touching the
        account when the charge is not allowed.
        """
        if cost <= 0:
            raise InvalidInput("Invalid cost")
        now = now or utcnow()

        for _ in range(MAX_UPDATE_ATTEMPTS):
            user = await self._require_user(user_id)
            try:
                ensure_active(user.credit, cost, now)
            except CreditLibraryError as exc:
                await self._audit.log_error(
                    message="Credit deduction rejected",
                    details={
                        "code": exc.code,
                        "requested": cost,
                        "balance": user.credit.balance,
                        "expiry": user.credit.expiry,
                    },
                    user_id=user_id,
                    correlation_id=correlation_id,
                )
                raise

            entry = LedgerEntry(
                amount=-cost,
                kind=LedgerEntryKind.USAGE,
                description=description,
                occurred_at=now,
            )
            updated = await self._db.apply_credit_usage(user_id, cost, entry, now)
            if updated is None:
                # Balance or expiry moved under us; re-validate against fresh state.
                continue

            new_balance = updated.credit.balance
            await self._audit.log_transaction(
                user_id=user_id,
                message="Credits deducted",
                details={"amount": cost, "new_balance": new_balance, "description": description},
                correlation_id=correlation_id,
            )
            return new_balance

        logger.error("Credit deduction for user %s kept losing update races", user_id)
        raise InfraFailure("credit deduction contention")

    async def extend_and_credit(
        self,
        user_id: str,
        credits: int,
        months: int,
        description: str,
        now: Optional[datetime] = None,
        correlation_id: Optional[str] = None,
    ) -> Tuple[int, datetime]:
        """
        Add `credits` and push the expiry `months` calendar months forward.

        The extension starts from the current expiry while it is still in
        the future, otherwise from `now`. Returns (balance, expiry).
        """
        if credits < 0 or months < 0:
            raise InvalidInput("credits and months must not be negative")
        now = now or utcnow()

        for _ in range(MAX_UPDATE_ATTEMPTS):
            user = await self._require_user(user_id)
            current_expiry = user.credit.expiry
            base = current_expiry if current_expiry is not None and current_expiry > now else now
            new_expiry = add_months(base, months)

            entry = LedgerEntry(
                amount=credits,
                kind=LedgerEntryKind.PURCHASE,
                description=description,
                occurred_at=now,
            )
            updated = await self._db.apply_credit_purchase(
                user_id, credits, entry, expected_expiry=current_expiry, new_expiry=new_expiry
            )
            if updated is None:
                continue

            await self._audit.log_transaction(
                user_id=user_id,
                message="Credits purchased",
                details={
                    "amount": credits,
                    "new_balance": updated.credit.balance,
                    "new_expiry": updated.credit.expiry,
                    "description": description,
                },
                correlation_id=correlation_id,
            )
            return updated.credit.balance, updated.credit.expiry  # type: ignore[return-value]

        logger.error("Credit extension for user %s kept losing update races", user_id)
        raise InfraFailure("credit extension contention")

    async def get_summary(
        self, user_id: str, now: Optional[datetime] = None
    ) -> CreditSummary:
        user = await self._require_user(user_id)
        account = user.credit
        return CreditSummary(
            user_id=user_id,
            balance=account.balance,
            expiry=account.expiry,
            active=has_active_credit(account, now or utcnow()),
            history=list(account.history),
        )
