"""
Append-only security/event log.

Entries are written through a dedicated session so they survive a rollback of
the business transaction that triggered them (a rejected IDOR attempt must
still leave a trace).
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

import structlog
from fastapi import Request
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shared.security.dependencies import RequestMeta
from .models import AuditLogEntry

logger = structlog.get_logger(__name__)


class AuditSeverity(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class AuditAction(str, Enum):
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_STATUS_CHANGED = "ORDER_STATUS_CHANGED"
    ORDER_PAYMENT_UPDATED = "ORDER_PAYMENT_UPDATED"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    DUPLICATE_REFERENCE_ATTEMPT = "DUPLICATE_REFERENCE_ATTEMPT"
    IDOR_ATTEMPT = "IDOR_ATTEMPT"
    RECHARGE_AUTO_APPROVED = "RECHARGE_AUTO_APPROVED"
    RECHARGE_REVIEWED = "RECHARGE_REVIEWED"
    SETTINGS_UPDATED = "SETTINGS_UPDATED"


class AuditRepository:
    @staticmethod
    async def append(db: AsyncSession, entry: AuditLogEntry) -> AuditLogEntry:
        db.add(entry)
        await db.commit()
        return entry

    @staticmethod
    async def query(
        db: AsyncSession,
        *,
        action: Optional[str] = None,
        severity: Optional[str] = None,
        actor_id: Optional[str] = None,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AuditLogEntry]:
        stmt = select(AuditLogEntry)
        if action:
            stmt = stmt.where(AuditLogEntry.action == action)
        if severity:
            stmt = stmt.where(AuditLogEntry.severity == severity)
        if actor_id:
            stmt = stmt.where(AuditLogEntry.actor_id == actor_id)
        if target_type:
            stmt = stmt.where(AuditLogEntry.target_type == target_type)
        if target_id:
            stmt = stmt.where(AuditLogEntry.target_id == target_id)
        stmt = stmt.order_by(AuditLogEntry.id.desc()).limit(limit).offset(offset)
        result = await db.execute(stmt)
        return list(result.scalars().all())


class AuditLogger:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def log(
        self,
        action: AuditAction,
        *,
        severity: AuditSeverity = AuditSeverity.INFO,
        actor_id: Optional[str] = None,
        target_type: Optional[str] = None,
        target_id: Optional[Any] = None,
        details: Optional[dict] = None,
        request_meta: Optional[RequestMeta] = None,
    ) -> None:
        record = {
            "action": action.value,
            "severity": severity.value,
            "actor_id": actor_id,
            "target_type": target_type,
            "target_id": str(target_id) if target_id is not None else None,
            "details": {**(details or {}), "logged_at": datetime.now(timezone.utc).isoformat()},
            "ip_address": request_meta.ip_address if request_meta else None,
            "user_agent": request_meta.user_agent if request_meta else None,
        }
        log = logger.critical if severity is AuditSeverity.CRITICAL else logger.info
        log("audit_event", **record)
        try:
            async with self._session_factory() as db:
                await AuditRepository.append(db, AuditLogEntry(**record))
        except SQLAlchemyError:
            # The structured log line above is the durable fallback
            logger.exception("audit_write_failed", **record)

    async def query(self, **filters) -> list[AuditLogEntry]:
        async with self._session_factory() as db:
            return await AuditRepository.query(db, **filters)


def get_audit_logger(request: Request) -> AuditLogger:
    return request.app.state.audit_logger
