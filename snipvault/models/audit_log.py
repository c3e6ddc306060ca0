"""Audit log model — append-only."""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, func
from snipvault.db.base import Base


class AuditLog(Base):
    """Immutable audit trail for security-sensitive actions.

    This table is APPEND-ONLY: no UPDATE or DELETE operations should ever
    be performed on it (enforced at application level).
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    actor_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    action = Column(String(100), nullable=False, index=True)  # e.g. "admin.user.unlock"
    target_type = Column(String(50), nullable=True)
    target_id = Column(String(255), nullable=True)
    metadata_json = Column("metadata", Text, nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False, index=True)
