"""Customer and volunteer models."""
import uuid

from sqlalchemy import Column, String
from sqlalchemy.orm import relationship

from app.database import Base
from app.timestamps import utcnow_iso


class Customer(Base):
    """Customer who places orders."""

    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(100), nullable=False)
    phone = Column(String(20), index=True)
    email = Column(String(255))
    created_at = Column(String(26), default=utcnow_iso)

    orders = relationship("Order", back_populates="customer")


class Volunteer(Base):
    """Volunteer who refers customers and may deliver orders."""

    __tablename__ = "volunteers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    volunteer_code = Column(String(20), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255))
    zone_id = Column(String(36), index=True)
    created_at = Column(String(26), default=utcnow_iso)
