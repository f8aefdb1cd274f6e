from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from credit_library.api.app import create_app
from credit_library.config import Settings
from credit_library.db.memory import InMemoryDBManager
from credit_library.logging.audit_logger import AuditLogger
from credit_library.models.ledger import CreditAccount
from credit_library.models.user import ApprovalStatus, UserAccount, UserRole
from credit_library.services.credit_ledger import CreditLedger


NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db() -> InMemoryDBManager:
    return InMemoryDBManager()


@pytest.fixture
def audit(db, tmp_path) -> AuditLogger:
    return AuditLogger(db=db, file_path=tmp_path / "audit.log")


@pytest.fixture
def ledger(db, audit) -> CreditLedger:
    return CreditLedger(db=db, audit=audit)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        MONGO_URI=None,
        UPLOAD_ROOT=tmp_path / "uploads",
        AUDIT_LOG_PATH=tmp_path / "audit.log",
        STREAM_CHUNK_SIZE=256,
    )


@pytest.fixture
def make_user(db):
    async def _make_user(
        balance: int = 0,
        expiry: Optional[datetime] = None,
        role: UserRole = UserRole.STUDENT,
        email: Optional[str] = None,
        approval_status: ApprovalStatus = ApprovalStatus.APPROVED,
    ) -> UserAccount:
        user = UserAccount(
            name="Test User",
            email=email or f"user{db._id_counter + 1}@example.com",
            role=role,
            approval_status=approval_status,
            credit=CreditAccount(balance=balance, expiry=expiry),
        )
        return await db.add_user(user)

    return _make_user


@pytest_asyncio.fixture
async def api(settings, db):
    app = create_app(settings, db=db)
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client, app.state.container


def auth(user: UserAccount) -> dict:
    return {"X-User-Id": user.id}


def days(n: int) -> timedelta:
    return timedelta(days=n)
