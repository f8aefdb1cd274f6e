from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import anyio

from ..db.base import BaseDBManager
from ..models.audit import AuditEvent, AuditEventType


logger = logging.getLogger(__name__)


class AuditLogger:
    """
    Records credit, payment and lifecycle events.

    Each event is stored through the storage manager and mirrored as one
    JSON line in `file_path`. The stored record is authoritative: a failed
    mirror write is reported through `logging` and otherwise ignored.
    """

    def __init__(self, db: BaseDBManager, file_path: Path) -> None:
        self._db = db
        self._file_path = anyio.Path(file_path)
        self._dir_ready = False

    @property
    def file_path(self) -> Path:
        return Path(self._file_path)

    async def log_transaction(
        self,
        user_id: Optional[str],
        message: str,
        details: Dict[str, Any],
        correlation_id: Optional[str] = None,
    ) -> AuditEvent:
        return await self.record(
            AuditEventType.TRANSACTION, message, details, user_id, correlation_id
        )

    async def log_error(
        self,
        message: str,
        details: Dict[str, Any],
        user_id: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> AuditEvent:
        return await self.record(
            AuditEventType.ERROR, message, details, user_id, correlation_id
        )

    async def log_system(self, message: str, details: Dict[str, Any]) -> AuditEvent:
        return await self.record(AuditEventType.SYSTEM, message, details)

    async def record(
        self,
        event_type: AuditEventType,
        message: str,
        details: Dict[str, Any],
        user_id: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> AuditEvent:
        event = await self._db.add_audit_event(
            AuditEvent(
                event_type=event_type,
                user_id=user_id,
                message=message,
                details=details,
                correlation_id=correlation_id,
            )
        )
        await self._mirror(event)
        return event

    async def _mirror(self, event: AuditEvent) -> None:
        line = json.dumps(event.serialize_for_db(), default=str) + "\n"
        try:
            if not self._dir_ready:
                await self._file_path.parent.mkdir(parents=True, exist_ok=True)
                self._dir_ready = True
            async with await anyio.open_file(self._file_path, "a", encoding="utf-8") as f:
                await f.write(line)
        except OSError as exc:
            logger.warning(
                "Audit file mirror failed for %s event: %s",
                event.event_type,
                exc,
                extra={"path": str(self._file_path)},
            )
