# tests/conftest.py
"""
Pytest configuration and shared fixtures for the ledger core tests.

Every test gets a fresh in-memory SQLite schema. Wallets are funded through
LedgerService so that wallet == SUM(mlm_transactions.amount) holds from the
first row.

Run:
    pytest tests/ -v
"""
import asyncio
import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import core.db
from config import Config
from models import Base, User, UserPackage, PlanSetting, BinaryTreeNode
from models.listeners import register_all_listeners
from mlm_system.config.plans import TransactionType
from mlm_system.services.ledger_service import LedgerService
from mlm_system.utils.binary_log import reset_binary_logger
from mlm_system.utils.time_machine import timeMachine

# =============================================================================
# INITIALIZE CONFIG
# =============================================================================

Config.initialize_from_env()
Config.set(Config.DATABASE_URL, "sqlite://", source="tests")
Config.set(Config.ADMIN_API_TOKEN, "test-admin-token", source="tests")
Config.set(Config.MIN_WITHDRAWAL, Decimal("10"), source="tests")
Config.set(Config.MAX_TREE_DEPTH, 30, source="tests")
Config.set(Config.BINARY_MATCHING_HOUR, 0, source="tests")

ADMIN_TOKEN = "test-admin-token"

# 2026-03-02 09:00 UTC, a Monday, far from any day boundary
BASE_TIME = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

BINARY_PAYLOAD = {
    "payout_percentage": 10,
    "min_match_amount": 100,
    "max_daily_match": 10000,
    "matching_ratio": "1:1",
    "cycle_payout": False,
}

BOOSTER_PAYLOAD = {
    "required_directs": 3,
    "bonus_roi_percentage": 0.10,
}


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture(scope="session")
def engine():
    """In-memory database shared by every session of a test."""
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )


@pytest.fixture(scope="session", autouse=True)
def setup_listeners():
    """Register listeners once at test session start."""
    register_all_listeners()


@pytest.fixture(scope="session", autouse=True)
def binary_log_dir(tmp_path_factory):
    """Send the binary side-channel log to a temp dir."""
    log_dir = tmp_path_factory.mktemp("logs")
    Config.set(Config.LOG_DIR, str(log_dir), source="tests")
    reset_binary_logger()
    yield log_dir
    reset_binary_logger()


@pytest.fixture
def session_factory(engine, monkeypatch):
    """Fresh schema; core.db hands out sessions on the test engine."""
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine)

    monkeypatch.setattr(core.db, "_engine", engine)
    monkeypatch.setattr(core.db, "_SessionFactory", factory)

    yield factory

    Base.metadata.drop_all(engine)


@pytest.fixture
def session(session_factory):
    """Create database session for each test."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(autouse=True)
def clock():
    """Virtual clock pinned to BASE_TIME, reset after the test."""
    timeMachine.setTime(BASE_TIME)
    yield timeMachine
    timeMachine.resetToRealTime()


@pytest.fixture
def run():
    """Run a coroutine to completion."""

    def _run(coro):
        return asyncio.run(coro)

    return _run


# =============================================================================
# FACTORY FIXTURES
# =============================================================================

@pytest.fixture
def make_user(session):
    """
    Create a user; optional balance is funded through the ledger.

    Usage:
        user = make_user(sponsor=parent, balance=200)
    """

    def _make(sponsor=None, balance=0, is_active=True, email=None):
        user = User(
            email=email or f"user_{uuid.uuid4().hex[:8]}@example.com",
            fullName="Test User",
            sponsorID=sponsor.userID if sponsor else None,
            isActive=is_active
        )
        session.add(user)
        session.commit()

        if balance:
            fund(session, user.userID, balance)

        return user

    return _make


def fund(session, user_id, amount):
    """Credit a wallet the way an admin does, then commit."""
    LedgerService(session).post(
        userId=user_id,
        amount=Decimal(str(amount)),
        transactionType=TransactionType.ADMIN_ADD_FUND,
        description="Test funding",
        referenceType="admin_action",
        referenceId="tests"
    )
    session.commit()


@pytest.fixture
def make_package(session):
    """Create an investment package for a user."""

    def _make(user, amount, status="active", activation_date=None):
        package = UserPackage(
            userID=user.userID,
            packageName="Starter",
            investmentAmount=Decimal(str(amount)),
            status=status,
            activationDate=activation_date or timeMachine.now
        )
        session.add(package)
        session.commit()
        return package

    return _make


@pytest.fixture
def place(session):
    """Place a user in the binary tree under parent's position."""

    def _place(user, parent=None, position=None, left_unmatched=0, right_unmatched=0):
        parent_node = None
        if parent is not None:
            parent_node = session.query(BinaryTreeNode).filter_by(userID=parent.userID).one()

        node = BinaryTreeNode(
            userID=user.userID,
            parentID=parent_node.nodeID if parent_node else None,
            position=position,
            leftVolume=Decimal(str(left_unmatched)),
            rightVolume=Decimal(str(right_unmatched)),
            leftUnmatched=Decimal(str(left_unmatched)),
            rightUnmatched=Decimal(str(right_unmatched)),
            matchedToDate=Decimal("0")
        )
        session.add(node)
        session.commit()
        return node

    return _place


@pytest.fixture
def enable_feature(session):
    """Insert or update a plan_settings row."""

    def _enable(feature_key, payload=None, active=True):
        setting = session.query(PlanSetting).filter_by(featureKey=feature_key).first()
        if setting is None:
            setting = PlanSetting(featureKey=feature_key)
            session.add(setting)
        setting.isActive = active
        setting.payload = payload
        session.commit()
        return setting

    return _enable


@pytest.fixture
def binary_plan(enable_feature):
    """Binary volume + matching enabled with the default payload."""
    enable_feature("binary_plan")
    enable_feature("binary_matching", dict(BINARY_PAYLOAD))


@pytest.fixture
def booster_plan(enable_feature):
    """Booster income enabled with 3 required directs."""
    enable_feature("booster_income", dict(BOOSTER_PAYLOAD))


# =============================================================================
# HELPER FIXTURES
# =============================================================================

@pytest.fixture
def assert_conserved(session):
    """Assert wallet == SUM(ledger) for the given users."""

    def _check(*users):
        ledger = LedgerService(session)
        for user in users:
            report = ledger.reconcileUser(user.userID)
            assert report["consistent"], (
                f"user {user.userID}: wallet={report['wallet_balance']}, "
                f"ledger={report['ledger_sum']}"
            )

    return _check
