"""Audit service — append-only audit trail for security-sensitive actions."""

import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import Request
from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from snipvault.models.audit_log import AuditLog
from snipvault.models.user import User

logger = logging.getLogger("snipvault.audit")


def client_ip(request: Optional[Request]) -> Optional[str]:
    """First X-Forwarded-For hop, else the direct peer address."""
    if request is None:
        return None
    forwarded = request.headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    return request.client.host if request.client else None


def client_context(request: Optional[Request]) -> Dict[str, Optional[str]]:
    if request is None:
        return {"ip_address": None, "user_agent": None}
    user_agent = request.headers.get("user-agent")
    return {
        "ip_address": client_ip(request),
        "user_agent": user_agent[:500] if user_agent else None,
    }


class AuditService:
    """Records immutable audit log entries for system events.

    Writes use their own session so that a failed audit insert can never roll
    back, or be rolled back by, the operation it describes.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def record(
        self,
        actor_id: Optional[int],
        action: str,
        target_type: Optional[str] = None,
        target_id: Optional[Any] = None,
        metadata: Optional[Dict[str, Any]] = None,
        request: Optional[Request] = None,
    ) -> None:
        """Append one audit row. Failures are logged, never raised.

        Args:
            action: dotted taxonomy name, e.g. "auth.login.failed", "admin.user.unlock"
            target_type: user, system, snippet, ...
        """
        if not action:
            return

        context = client_context(request)
        try:
            entry = AuditLog(
                actor_id=actor_id,
                action=action,
                target_type=target_type,
                target_id=None if target_id is None else str(target_id),
                metadata_json=json.dumps(metadata, default=str) if metadata else None,
                ip_address=context["ip_address"],
                user_agent=context["user_agent"],
            )
            with self._session_factory() as db:
                db.add(entry)
                db.commit()
        except Exception:
            logger.error("Failed to write audit log: %s", action, exc_info=True)

    def list(self, limit: int = 50, offset: int = 0) -> List[Dict[str, Any]]:
        """Entries newest-first, with the acting username resolved."""
        with self._session_factory() as db:
            rows = db.execute(
                select(AuditLog, User.username)
                .outerjoin(User, User.id == AuditLog.actor_id)
                .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
                .limit(limit)
                .offset(offset)
            ).all()

        return [
            {
                "id": entry.id,
                "actor_id": entry.actor_id,
                "actor_username": username,
                "action": entry.action,
                "target_type": entry.target_type,
                "target_id": entry.target_id,
                "metadata": json.loads(entry.metadata_json) if entry.metadata_json else None,
                "ip_address": entry.ip_address,
                "user_agent": entry.user_agent,
                "created_at": entry.created_at,
            }
            for entry, username in rows
        ]

    def count(self) -> int:
        with self._session_factory() as db:
            return db.scalar(select(func.count()).select_from(AuditLog)) or 0
