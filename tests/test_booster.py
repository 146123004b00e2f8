# tests/test_booster.py
"""
Tests for the booster qualification tracker.

    30-day window, target directs each holding an active package
    >= the booster investment → one-time 10% reward.

Run:
    pytest tests/test_booster.py -v
"""
from decimal import Decimal

import pytest

from models import Booster, LedgerTransaction, User, UserPackage
from mlm_system.services.booster_service import BoosterService
from mlm_system.services.ledger_service import LedgerService


@pytest.fixture
def owner(make_user, make_package):
    """Booster owner with a 1000 investment."""
    user = make_user()
    make_package(user, 1000)
    return user


@pytest.fixture
def add_direct(make_user, make_package):
    """Sponsored user holding an active package."""

    def _add(sponsor, amount=1000, is_active=True, status="active"):
        direct = make_user(sponsor=sponsor, is_active=is_active)
        make_package(direct, amount, status=status)
        return direct

    return _add


def reward_rows(session, user):
    return session.query(LedgerTransaction).filter_by(
        userID=user.userID, transactionType="booster_reward"
    ).all()


# =============================================================================
# TEST CLASS: initializeBooster
# =============================================================================

class TestInitializeBooster:

    def test_creates_thirty_day_window(self, session, owner, run, booster_plan, clock):
        """
        TEST: Window opens now and closes 30 days later.
        """
        booster = run(BoosterService(session).initializeBooster(owner.userID))

        assert booster.status == "active"
        assert booster.targetDirects == 3
        assert booster.qualifiedDirects == 0
        assert booster.rewardCredited is False
        assert booster.investmentAmount == Decimal("1000.00")
        assert (booster.endDate - booster.startDate).days == 30

        session.refresh(owner)
        assert owner.firstInvestmentDate is not None

    def test_resolves_latest_active_package(self, session, owner, make_package, run, booster_plan):
        latest = make_package(owner, 2500)

        booster = run(BoosterService(session).initializeBooster(owner.userID))

        assert booster.investmentID == latest.packageID
        assert booster.investmentAmount == Decimal("2500.00")

    def test_explicit_investment_arguments(self, session, owner, run, booster_plan):
        package = session.query(UserPackage).filter_by(userID=owner.userID).one()

        booster = run(BoosterService(session).initializeBooster(
            owner.userID, investmentId=package.packageID, investmentAmount=Decimal("750")
        ))

        assert booster.investmentID == package.packageID
        assert booster.investmentAmount == Decimal("750.00")

    def test_one_live_booster_per_user(self, session, owner, run, booster_plan):
        """
        TEST: A second initialization while one is live is a no-op.
        """
        service = BoosterService(session)
        first = run(service.initializeBooster(owner.userID))
        second = run(service.initializeBooster(owner.userID))

        assert first is not None
        assert second is None
        assert session.query(Booster).filter_by(userID=owner.userID).count() == 1

    def test_disabled_plan_is_noop(self, session, owner, run):
        assert run(BoosterService(session).initializeBooster(owner.userID)) is None
        assert session.query(Booster).count() == 0


# =============================================================================
# TEST CLASS: updateBoosterDirectCount
# =============================================================================

class TestBoosterQualification:

    def test_achieved_at_day_ten(self, session, owner, add_direct, run, booster_plan, clock, assert_conserved):
        """
        TEST: 3 qualifying directs by day 10 → achieved, reward 100, one ledger row.
        """
        service = BoosterService(session)
        run(service.initializeBooster(owner.userID))

        clock.advanceTime(days=10)
        for _ in range(3):
            add_direct(owner, 1000)

        state = run(service.updateBoosterDirectCount(owner.userID))

        assert state["status"] == "achieved"
        assert state["qualified_directs"] == 3
        assert state["reward_credited"] is True
        assert state["reward_amount"] == Decimal("100.00")

        rows = reward_rows(session, owner)
        assert len(rows) == 1
        assert rows[0].idempotencyKey == f"booster_reward_{state['id']}"

        session.refresh(owner)
        assert owner.walletBalance == Decimal("100.00")
        assert owner.boosterEarnings == Decimal("100.00")
        assert_conserved(owner)

    def test_rerun_after_achievement_pays_nothing(self, session, owner, add_direct, run, booster_plan, clock):
        """
        TEST: Re-running the update after achievement inserts no second reward.
        """
        service = BoosterService(session)
        run(service.initializeBooster(owner.userID))
        for _ in range(3):
            add_direct(owner, 1000)

        run(service.updateBoosterDirectCount(owner.userID))
        add_direct(owner, 1000)
        again = run(service.updateBoosterDirectCount(owner.userID))

        assert again is None
        assert len(reward_rows(session, owner)) == 1
        session.refresh(owner)
        assert owner.walletBalance == Decimal("100.00")

    def test_duplicate_reward_key_is_noop(self, session, owner, add_direct, run, booster_plan, monkeypatch,
                                          assert_conserved):
        """
        TEST: A reward key already journaled by a concurrent run fails the flush
        → no second credit, the booster is returned unchanged.
        """
        service = BoosterService(session)
        booster = run(service.initializeBooster(owner.userID))
        key = f"booster_reward_{booster.boosterID}"

        LedgerService(session).post(
            userId=owner.userID,
            amount=Decimal("100.00"),
            transactionType="booster_reward",
            description="Reward journaled by another worker",
            referenceType="booster",
            referenceId=booster.boosterID,
            idempotencyKey=key,
            earningsFields=("totalEarnings", "boosterEarnings")
        )
        session.commit()
        for _ in range(3):
            add_direct(owner, 1000)

        # Lookups miss the committed row, so the insert hits the unique key
        with monkeypatch.context() as patch:
            patch.setattr(LedgerService, "findByIdempotencyKey", lambda self, _key: None)
            state = run(service.updateBoosterDirectCount(owner.userID))

        assert state["id"] == booster.boosterID
        assert state["reward_credited"] is False
        assert len(reward_rows(session, owner)) == 1
        session.refresh(owner)
        assert owner.walletBalance == Decimal("100.00")
        assert_conserved(owner)

        state = run(service.updateBoosterDirectCount(owner.userID))

        assert state["status"] == "achieved"
        assert len(reward_rows(session, owner)) == 1
        session.refresh(owner)
        assert owner.walletBalance == Decimal("100.00")
        assert_conserved(owner)

    def test_expired_at_day_thirty_one(self, session, owner, add_direct, run, booster_plan, clock, assert_conserved):
        """
        TEST: Qualifying at day 31 is too late → expired, no reward row.
        """
        service = BoosterService(session)
        run(service.initializeBooster(owner.userID))

        clock.advanceTime(days=31)
        for _ in range(3):
            add_direct(owner, 1000)

        state = run(service.updateBoosterDirectCount(owner.userID))

        assert state["status"] == "expired"
        assert state["reward_credited"] is False
        assert state["days_remaining"] == 0
        assert reward_rows(session, owner) == []
        session.refresh(owner)
        assert owner.walletBalance == Decimal("0.00")
        assert_conserved(owner)

    def test_smaller_investments_do_not_qualify(self, session, owner, add_direct, run, booster_plan):
        """
        TEST: Qualification is gated by the booster investment amount.
        """
        service = BoosterService(session)
        run(service.initializeBooster(owner.userID))

        add_direct(owner, 1000)
        add_direct(owner, 999.99)
        add_direct(owner, 5000)

        state = run(service.updateBoosterDirectCount(owner.userID))

        assert state["qualified_directs"] == 2
        assert state["status"] == "active"
        assert reward_rows(session, owner) == []

    def test_inactive_users_and_packages_do_not_qualify(self, session, owner, add_direct, run, booster_plan):
        service = BoosterService(session)
        run(service.initializeBooster(owner.userID))

        add_direct(owner, 1000)
        add_direct(owner, 1000, is_active=False)
        add_direct(owner, 1000, status="stopped")

        state = run(service.updateBoosterDirectCount(owner.userID))

        assert state["qualified_directs"] == 1

    def test_several_packages_count_once(self, session, owner, add_direct, make_package, run, booster_plan):
        service = BoosterService(session)
        run(service.initializeBooster(owner.userID))

        direct = add_direct(owner, 1000)
        make_package(direct, 2000)

        state = run(service.updateBoosterDirectCount(owner.userID))

        assert state["qualified_directs"] == 1

    def test_achievement_flags_active_packages(self, session, owner, add_direct, run, booster_plan):
        """
        TEST: Owner's active packages get hasBooster and the bonus ROI rate.
        """
        service = BoosterService(session)
        run(service.initializeBooster(owner.userID))
        for _ in range(3):
            add_direct(owner, 1000)

        run(service.updateBoosterDirectCount(owner.userID))

        session.expire_all()
        package = session.query(UserPackage).filter_by(userID=owner.userID).one()
        assert package.hasBooster is True
        assert package.boosterRoiPercentage == Decimal("0.1000")

    def test_no_booster_returns_none(self, session, make_user, run):
        user = make_user()
        assert run(BoosterService(session).updateBoosterDirectCount(user.userID)) is None


# =============================================================================
# TEST CLASS: expiry and reads
# =============================================================================

class TestBoosterExpiry:

    def test_expire_daily(self, session, owner, make_user, make_package, run, booster_plan, clock):
        """
        TEST: Boosters past endDate expire; fresh ones stay active.
        """
        service = BoosterService(session)
        run(service.initializeBooster(owner.userID))

        clock.advanceTime(days=20)
        fresh = make_user()
        make_package(fresh, 500)
        run(service.initializeBooster(fresh.userID))

        clock.advanceTime(days=11)
        expired = run(service.expireBoostersDaily())

        assert expired == 1
        session.expire_all()
        statuses = {b.userID: b.status for b in session.query(Booster).all()}
        assert statuses == {owner.userID: "expired", fresh.userID: "active"}

    def test_expire_at_end_date(self, session, owner, run, booster_plan, clock):
        """
        TEST: At exactly endDate the daily job expires the booster.
        """
        service = BoosterService(session)
        run(service.initializeBooster(owner.userID))

        clock.advanceTime(days=30)

        assert run(service.expireBoostersDaily()) == 1
        session.expire_all()
        assert session.query(Booster).filter_by(userID=owner.userID).one().status == "expired"

    def test_expire_nothing(self, session, run):
        assert run(BoosterService(session).expireBoostersDaily()) == 0


class TestBoosterReads:

    def test_status_and_listing(self, session, owner, add_direct, run, booster_plan, clock):
        service = BoosterService(session)
        run(service.initializeBooster(owner.userID))
        add_direct(owner, 100)

        clock.advanceTime(days=5)
        status = run(service.getBoosterStatus(owner.userID))

        assert status["status"] == "active"
        assert status["days_remaining"] == 25
        assert status["direct_count"] == 1

        listing = run(service.getAllActiveBoosters())
        assert len(listing) == 1
        assert listing[0]["user_id"] == owner.userID
        assert listing[0]["email"] == owner.email

    def test_status_without_booster(self, session, make_user, run):
        user = make_user()
        assert run(BoosterService(session).getBoosterStatus(user.userID)) is None
