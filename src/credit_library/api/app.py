from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from ..config import Settings
from ..db.base import BaseDBManager
from ..db.memory import InMemoryDBManager
from ..logging.audit_logger import AuditLogger
from ..services.credit_ledger import CreditLedger
from ..services.document_service import DocumentService
from ..services.payment_service import PaymentService
from ..services.range_server import RangeFileServer
from ..services.user_service import UserService
from . import credits, documents, payments, users
from .dependencies import ServiceContainer
from .errors import install_error_handlers


logger = logging.getLogger(__name__)


def create_db_manager(settings: Settings) -> BaseDBManager:
    if settings.MONGO_URI:
        # Imported lazily so the in-memory store works without a MongoDB driver setup.
        from ..db.mongo import MongoDBManager

        return MongoDBManager.from_client_uri(settings.MONGO_URI, settings.MONGO_DB)
    logger.warning("MONGO_URI not set; using the in-memory store")
    return InMemoryDBManager()


def build_container(
    settings: Settings, db: Optional[BaseDBManager] = None
) -> ServiceContainer:
    db = db or create_db_manager(settings)
    audit = AuditLogger(db=db, file_path=settings.AUDIT_LOG_PATH)
    ledger = CreditLedger(db=db, audit=audit)
    file_server = RangeFileServer(settings.UPLOAD_ROOT, chunk_size=settings.STREAM_CHUNK_SIZE)
    return ServiceContainer(
        settings=settings,
        db=db,
        audit=audit,
        ledger=ledger,
        payments=PaymentService(
            db=db,
            ledger=ledger,
            audit=audit,
            plan_months=settings.PLAN_MONTHS,
            default_rejection_reason=settings.DEFAULT_REJECTION_REASON,
        ),
        documents=DocumentService(
            db=db,
            ledger=ledger,
            file_server=file_server,
            download_cost=settings.DOWNLOAD_COST,
        ),
        users=UserService(db=db, audit=audit),
    )


def create_app(
    settings: Optional[Settings] = None, db: Optional[BaseDBManager] = None
) -> FastAPI:
    """
    Build the application. Settings and the storage manager are created
    once here and shared by every request through `app.state.container`.
    """
    settings = settings or Settings()
    logging.basicConfig(level=settings.LOG_LEVEL)
    container = build_container(settings, db)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        settings.UPLOAD_ROOT.mkdir(parents=True, exist_ok=True)
        ensure_indexes = getattr(container.db, "ensure_indexes", None)
        if ensure_indexes is not None:
            await ensure_indexes()
        await container.audit.log_system("Service started", {"store": type(container.db).__name__})
        try:
            yield
        finally:
            await container.db.close()

    app = FastAPI(title="Credit Library", lifespan=lifespan)
    app.state.container = container
    install_error_handlers(app)

    app.include_router(credits.router)
    app.include_router(payments.router)
    app.include_router(documents.router)
    app.include_router(users.router)

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app
