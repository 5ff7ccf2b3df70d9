"""Audit logging for order lifecycle and scheduling actions.

Audit writes are best-effort: they happen in their own session after the
primary change has committed, and a failure is logged rather than raised.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from sqlalchemy.orm import sessionmaker

from app.database import get_db_context
from app.models.audit import AuditLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditActor:
    id: str | None = None
    email: str | None = None
    name: str | None = None
    role: str = "system"  # super_admin, admin, viewer, volunteer, customer, public, system


SYSTEM_ACTOR = AuditActor(name="system", role="system")


@dataclass(frozen=True)
class AuditEntry:
    actor: AuditActor
    action: str
    entity_type: str
    entity_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    ip_address: str | None = None


class AuditSink(Protocol):
    def record(self, entry: AuditEntry) -> None: ...


class DatabaseAuditSink:
    def __init__(self, session_factory: sessionmaker | None = None):
        self.session_factory = session_factory

    def record(self, entry: AuditEntry) -> None:
        with get_db_context(self.session_factory) as db:
            db.add(AuditLog(
                actor_id=entry.actor.id,
                actor_email=entry.actor.email,
                actor_name=entry.actor.name or "Unknown",
                actor_role=entry.actor.role,
                action=entry.action,
                entity_type=entry.entity_type,
                entity_id=entry.entity_id,
                details=json.dumps(entry.details, default=str) if entry.details else None,
                ip_address=entry.ip_address,
            ))


class NullAuditSink:
    def record(self, entry: AuditEntry) -> None:
        return None


def record_safely(auditor: AuditSink, entry: AuditEntry) -> None:
    """Record an audit entry, logging instead of raising on failure."""
    try:
        auditor.record(entry)
    except Exception:
        logger.exception(f"Audit log error for {entry.action} on {entry.entity_type} {entry.entity_id}")
