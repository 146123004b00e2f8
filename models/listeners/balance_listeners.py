# models/listeners/balance_listeners.py
"""
Balance Event Listeners - guard User.walletBalance against direct writes.

Architecture:
    LedgerService.post() → lock user → walletBalance += delta → INSERT mlm_transactions

User.walletBalance MUST only change inside a ledger posting, so that
SUM(mlm_transactions.amount) == User.walletBalance for every user.
Writes outside ledger_write() are logged with a stack excerpt.
"""
import logging
import traceback
from contextlib import contextmanager
from contextvars import ContextVar

from sqlalchemy import event
from sqlalchemy.orm import base as orm_base

logger = logging.getLogger(__name__)

_ledger_write_depth: ContextVar[int] = ContextVar("ledger_write_depth", default=0)

_UNSET = (None, orm_base.NO_VALUE, orm_base.NEVER_SET)


@contextmanager
def ledger_write():
    """Mark the enclosed block as an authorised balance mutation."""
    token = _ledger_write_depth.set(_ledger_write_depth.get() + 1)
    try:
        yield
    finally:
        _ledger_write_depth.reset(token)


def is_ledger_write() -> bool:
    return _ledger_write_depth.get() > 0


def register_balance_protection():
    """
    Log warnings when User.walletBalance is modified outside the ledger.

    Called once during application startup from models/listeners/__init__.py
    """
    from models.user import User

    @event.listens_for(User.walletBalance, 'set')
    def warn_direct_wallet_balance_set(target, value, oldvalue, initiator):
        """Warn when walletBalance is set directly (not via LedgerService)."""
        if oldvalue in _UNSET or value == oldvalue:
            return
        if is_ledger_write():
            return

        stack = ''.join(traceback.format_stack()[-5:-1])
        logger.warning(
            f"DIRECT walletBalance modification detected! "
            f"user={target.userID}, {oldvalue} → {value}\n"
            f"Stack:\n{stack}"
        )
