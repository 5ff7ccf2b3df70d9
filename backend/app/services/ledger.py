"""Commission challenge ledger.

All adjustments go through :class:`ChallengeLedger` so that the per-volunteer
accumulator has a single writer. ``adjust`` never commits: it is meant to run
inside the same transaction as the order-status write that triggered it.
"""
import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.challenge import ChallengeProgress

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerAdjustment:
    volunteer_id: str
    before: int
    after: int
    goal: int

    @property
    def applied_delta(self) -> int:
        return self.after - self.before


def crossed_milestones(adjustment: LedgerAdjustment | None, milestones: list[int]) -> list[int]:
    """Milestones reached by an increment (``before < m <= after``)."""
    if adjustment is None or adjustment.after <= adjustment.before:
        return []
    return sorted(m for m in set(milestones) if adjustment.before < m <= adjustment.after)


class ChallengeLedger:
    def __init__(self, default_goal: int | None = None):
        self.default_goal = default_goal or get_settings().challenge_default_goal

    def get_progress(self, db: Session, volunteer_id: str) -> ChallengeProgress | None:
        return db.scalars(
            select(ChallengeProgress).where(ChallengeProgress.volunteer_id == volunteer_id)
        ).first()

    def adjust(self, db: Session, volunteer_id: str | None, delta: int) -> LedgerAdjustment | None:
        """Apply a signed delta to a volunteer's confirmed units.

        Creates the entry lazily for positive deltas, clamps at zero, and is a
        no-op when there is no volunteer, no delta, or nothing to subtract from.
        """
        if volunteer_id is None or delta == 0:
            return None

        progress = self._locked_progress(db, volunteer_id)
        if progress is None:
            if delta < 0:
                logger.info(f"No ledger entry for volunteer {volunteer_id}; skipping decrement of {-delta}")
                return None
            created = self._create(db, volunteer_id, delta)
            if created is not None:
                return created
            # Lost the creation race to a concurrent writer; fall through to update
            progress = self._locked_progress(db, volunteer_id)

        before = progress.confirmed_units or 0
        after = max(0, before + delta)
        progress.confirmed_units = after
        db.flush()

        logger.info(f"Ledger for volunteer {volunteer_id}: {before} -> {after} (delta {delta:+d})")
        return LedgerAdjustment(volunteer_id=volunteer_id, before=before, after=after, goal=progress.goal)

    def _locked_progress(self, db: Session, volunteer_id: str) -> ChallengeProgress | None:
        return db.scalars(
            select(ChallengeProgress)
            .where(ChallengeProgress.volunteer_id == volunteer_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).first()

    def _create(self, db: Session, volunteer_id: str, units: int) -> LedgerAdjustment | None:
        progress = ChallengeProgress(
            volunteer_id=volunteer_id,
            confirmed_units=units,
            goal=self.default_goal,
        )
        try:
            with db.begin_nested():
                db.add(progress)
        except IntegrityError:
            logger.warning(f"Ledger entry for volunteer {volunteer_id} created concurrently; retrying as update")
            return None

        logger.info(f"Created ledger entry for volunteer {volunteer_id} with {units} units")
        return LedgerAdjustment(volunteer_id=volunteer_id, before=0, after=units, goal=progress.goal)
