# tests/test_investment_admin.py
"""
Tests for admin investment operations.

Run:
    pytest tests/test_investment_admin.py -v
"""
from datetime import timedelta
from decimal import Decimal

import pytest

from models import InvestmentStop, LedgerTransaction, UserPackage
from mlm_system.services.investment_admin_service import InvestmentAdminService


# =============================================================================
# TEST CLASS: stopInvestment
# =============================================================================

class TestStopInvestment:

    def test_early_stop_penalty(self, session, make_user, make_package, run, clock):
        """
        TEST: Stopped within 30 days → 15% penalty.
        """
        user = make_user()
        package = make_package(user, 1000, activation_date=clock.now - timedelta(days=10))

        result = run(InvestmentAdminService(session).stopInvestment(package.packageID, "user request"))

        assert result["success"] is True
        assert result["data"] == {
            "investment_id": package.packageID,
            "days_active": 10,
            "penalty_percentage": 15.0,
            "penalty_amount": 150.0,
            "principal_remaining": 850.0,
        }

        session.expire_all()
        stored = session.query(UserPackage).filter_by(packageID=package.packageID).one()
        assert stored.status == "stopped"
        assert stored.principalRemaining == Decimal("850.00")

        audit = session.query(InvestmentStop).filter_by(packageID=package.packageID).one()
        assert audit.reason == "user request"
        assert audit.daysActive == 10

    def test_day_thirty_is_still_early(self, session, make_user, make_package, run, clock):
        user = make_user()
        package = make_package(user, 1000, activation_date=clock.now - timedelta(days=30))

        result = run(InvestmentAdminService(session).stopInvestment(package.packageID))

        assert result["data"]["penalty_percentage"] == 15.0

    def test_late_stop_penalty(self, session, make_user, make_package, run, clock):
        """
        TEST: Stopped after 30 days → 5% penalty.
        """
        user = make_user()
        package = make_package(user, 1000, activation_date=clock.now - timedelta(days=45))

        result = run(InvestmentAdminService(session).stopInvestment(package.packageID))

        assert result["data"]["days_active"] == 45
        assert result["data"]["penalty_percentage"] == 5.0
        assert result["data"]["principal_remaining"] == 950.0

    def test_stop_does_not_touch_wallet(self, session, make_user, make_package, run, assert_conserved):
        user = make_user(balance=10)
        package = make_package(user, 1000)

        run(InvestmentAdminService(session).stopInvestment(package.packageID))

        session.refresh(user)
        assert user.walletBalance == Decimal("10.00")
        assert_conserved(user)

    def test_only_active_can_stop(self, session, make_user, make_package, run):
        user = make_user()
        package = make_package(user, 1000, status="completed")

        result = run(InvestmentAdminService(session).stopInvestment(package.packageID))

        assert result["success"] is False
        assert result["code"] == "invalid_state"
        assert result["message"] == "Investment cannot be stopped. Current status: completed"

    def test_missing_investment(self, session, run):
        result = run(InvestmentAdminService(session).stopInvestment(31337))

        assert result["success"] is False
        assert result["code"] == "not_found"


# =============================================================================
# TEST CLASS: adjustRoi
# =============================================================================

class TestAdjustRoi:

    def test_adjustment_credits_owner(self, session, make_user, make_package, run, assert_conserved):
        """
        TEST: ROI adjustment moves totalRoiEarned, wallet and ROI earnings together.
        """
        user = make_user()
        package = make_package(user, 1000)

        result = run(InvestmentAdminService(session).adjustRoi(package.packageID, "12.34", "missed day"))

        assert result["success"] is True
        assert result["data"]["new_wallet_balance"] == 12.34

        session.expire_all()
        stored = session.query(UserPackage).filter_by(packageID=package.packageID).one()
        assert stored.totalRoiEarned == Decimal("12.34")

        session.refresh(user)
        assert user.roiEarnings == Decimal("12.34")
        assert user.totalEarnings == Decimal("12.34")

        tx = session.query(LedgerTransaction).filter_by(userID=user.userID).one()
        assert tx.transactionType == "roi_adjustment"
        assert tx.referenceType == "investment"
        assert_conserved(user)

    def test_negative_adjustment_within_balance(self, session, make_user, make_package, run, assert_conserved):
        user = make_user(balance=20)
        package = make_package(user, 1000)

        result = run(InvestmentAdminService(session).adjustRoi(package.packageID, -5))

        assert result["success"] is True
        session.refresh(user)
        assert user.walletBalance == Decimal("15.00")
        assert_conserved(user)

    def test_negative_adjustment_overdraft(self, session, make_user, make_package, run):
        user = make_user(balance=1)
        package = make_package(user, 1000)

        result = run(InvestmentAdminService(session).adjustRoi(package.packageID, -5))

        assert result["success"] is False
        assert result["code"] == "insufficient_balance"

        session.expire_all()
        stored = session.query(UserPackage).filter_by(packageID=package.packageID).one()
        assert stored.totalRoiEarned == Decimal("0.00")

    @pytest.mark.parametrize("amount", [0, "0.00", "x", None])
    def test_amount_required(self, session, make_user, make_package, run, amount):
        user = make_user()
        package = make_package(user, 1000)

        result = run(InvestmentAdminService(session).adjustRoi(package.packageID, amount))

        assert result["success"] is False
        assert result["message"] == "Adjustment amount is required"
