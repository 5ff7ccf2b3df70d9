from app.models.challenge import ChallengeProgress
from app.models.user import Volunteer
from app.services.ledger import ChallengeLedger, LedgerAdjustment, crossed_milestones


def _volunteer(db, code="V1"):
    volunteer = Volunteer(volunteer_code=code, name=f"Volunteer {code}")
    db.add(volunteer)
    db.commit()
    return volunteer


def test_positive_delta_creates_entry_with_default_goal(db):
    volunteer = _volunteer(db)
    ledger = ChallengeLedger()

    adjustment = ledger.adjust(db, volunteer.id, 3)
    db.commit()

    assert adjustment == LedgerAdjustment(volunteer_id=volunteer.id, before=0, after=3, goal=20)
    progress = ledger.get_progress(db, volunteer.id)
    assert progress.confirmed_units == 3
    assert progress.goal == 20


def test_negative_delta_without_entry_is_noop(db):
    volunteer = _volunteer(db)
    ledger = ChallengeLedger()

    assert ledger.adjust(db, volunteer.id, -4) is None
    db.commit()

    assert db.query(ChallengeProgress).count() == 0


def test_zero_delta_and_missing_volunteer_are_noops(db):
    volunteer = _volunteer(db)
    ledger = ChallengeLedger()

    assert ledger.adjust(db, volunteer.id, 0) is None
    assert ledger.adjust(db, None, 5) is None
    assert db.query(ChallengeProgress).count() == 0


def test_decrement_clamps_at_zero(db):
    volunteer = _volunteer(db)
    ledger = ChallengeLedger()
    ledger.adjust(db, volunteer.id, 2)
    db.commit()

    adjustment = ledger.adjust(db, volunteer.id, -5)
    db.commit()

    assert adjustment.before == 2
    assert adjustment.after == 0
    assert adjustment.applied_delta == -2
    assert ledger.get_progress(db, volunteer.id).confirmed_units == 0


def test_existing_entry_keeps_its_goal(db):
    volunteer = _volunteer(db)
    db.add(ChallengeProgress(volunteer_id=volunteer.id, confirmed_units=4, goal=30))
    db.commit()

    adjustment = ChallengeLedger().adjust(db, volunteer.id, 6)
    db.commit()

    assert adjustment.after == 10
    assert adjustment.goal == 30


def test_custom_default_goal():
    assert ChallengeLedger(default_goal=12).default_goal == 12


def test_crossed_milestones_only_on_increase():
    up = LedgerAdjustment(volunteer_id="v", before=4, after=11, goal=20)
    down = LedgerAdjustment(volunteer_id="v", before=11, after=4, goal=20)
    exact = LedgerAdjustment(volunteer_id="v", before=5, after=9, goal=20)

    assert crossed_milestones(up, [5, 10, 15, 20]) == [5, 10]
    assert crossed_milestones(down, [5, 10, 15, 20]) == []
    assert crossed_milestones(exact, [5, 10, 15, 20]) == []
    assert crossed_milestones(None, [5, 10, 15, 20]) == []
