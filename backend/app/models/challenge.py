"""Commission challenge ledger model."""
import uuid

from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, String

from app.database import Base
from app.timestamps import utcnow_iso


class ChallengeProgress(Base):
    """Per-volunteer accumulator of commission-eligible units toward a goal."""

    __tablename__ = "challenge_progress"
    __table_args__ = (
        CheckConstraint("confirmed_units >= 0", name="ck_challenge_progress_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    volunteer_id = Column(
        String(36),
        ForeignKey("volunteers.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    confirmed_units = Column(Integer, nullable=False, default=0)
    goal = Column(Integer, nullable=False, default=20)
    updated_at = Column(String(26), default=utcnow_iso, onupdate=utcnow_iso)
