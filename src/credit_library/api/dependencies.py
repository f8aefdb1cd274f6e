from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request

from ..config import Settings
from ..db.base import BaseDBManager
from ..errors import Forbidden, Unauthorized
from ..logging.audit_logger import AuditLogger
from ..models.user import UserAccount, UserRole
from ..services.credit_ledger import CreditLedger
from ..services.document_service import DocumentService
from ..services.payment_service import PaymentService
from ..services.user_service import UserService


@dataclass
class ServiceContainer:
    """Everything a request handler may need, built once per application."""

    settings: Settings
    db: BaseDBManager
    audit: AuditLogger
    ledger: CreditLedger
    payments: PaymentService
    documents: DocumentService
    users: UserService


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_ledger(container: ServiceContainer = Depends(get_container)) -> CreditLedger:
    return container.ledger


def get_payment_service(container: ServiceContainer = Depends(get_container)) -> PaymentService:
    return container.payments


def get_document_service(container: ServiceContainer = Depends(get_container)) -> DocumentService:
    return container.documents


def get_user_service(container: ServiceContainer = Depends(get_container)) -> UserService:
    return container.users


async def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    container: ServiceContainer = Depends(get_container),
) -> UserAccount:
    """
    Resolve the authenticated principal. Token verification happens upstream;
    the identity proxy forwards the user id in `X-User-Id`.
    """
    if not x_user_id:
        raise Unauthorized()
    user = await container.db.get_user(x_user_id)
    if user is None:
        raise Unauthorized("User not found")
    if not user.is_active:
        raise Forbidden("Account is deactivated")
    return user


async def require_admin(user: UserAccount = Depends(get_current_user)) -> UserAccount:
    if user.role != UserRole.ADMIN:
        raise Forbidden(f"User role {user.role} is not authorized to access this route")
    return user


async def get_optional_user(
    x_user_id: Optional[str] = Header(default=None),
    container: ServiceContainer = Depends(get_container),
) -> Optional[UserAccount]:
    if not x_user_id:
        return None
    user = await container.db.get_user(x_user_id)
    if user is None or not user.is_active:
        return None
    return user
