from sqlalchemy import Column, DateTime, Integer, JSON, String, Index
from sqlalchemy.sql import func

from shared.config.database import Base


class AuditLogEntry(Base):
    """Append-only. Nothing in the code base updates or deletes these rows."""

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_action_created", "action", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    action = Column(String(64), nullable=False)
    severity = Column(String(16), nullable=False, default="INFO", index=True)
    actor_id = Column(String(64), nullable=True, index=True)
    target_type = Column(String(32), nullable=True)
    target_id = Column(String(64), nullable=True)
    details = Column(JSON, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
