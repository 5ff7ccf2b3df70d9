"""Audit log model."""
import uuid

from sqlalchemy import Column, Index, String, Text

from app.database import Base
from app.timestamps import utcnow_iso


class AuditLog(Base):
    """Record of an action taken by an admin, volunteer, customer or system job."""

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_entity", "entity_type", "entity_id"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    actor_id = Column(String(36))
    actor_email = Column(String(255))
    actor_name = Column(String(100))
    actor_role = Column(String(20))
    action = Column(String(100), nullable=False)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(36))
    details = Column(Text)  # JSON
    ip_address = Column(String(45))
    created_at = Column(String(26), default=utcnow_iso)
