# mlm_system/services/ledger_service.py
"""
Ledger service - the single ledger-post primitive.

Every wallet mutation goes through LedgerService.post():
    lock user row → balance_after = balance_before + amount
    → update wallet / earnings → INSERT mlm_transactions

The service never commits: the caller owns the transaction, so the ledger row
commits (or rolls back) together with the business rows it accompanies.
"""
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import func
import logging

from models.user import User
from models.ledger_transaction import LedgerTransaction
from models.listeners.balance_listeners import ledger_write
from mlm_system.config.plans import to_money
from mlm_system.errors import InsufficientBalanceError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

EARNINGS_FIELDS = ("totalEarnings", "binaryEarnings", "boosterEarnings", "roiEarnings")


class LedgerService:
    """
    Narrow write path for User.walletBalance.

    Lock order when several rows are involved:
        withdrawal → user, binary node → user, users by ascending userID.
    """

    def __init__(self, session: Session):
        self.session = session

    # ═══════════════════════════════════════════════════════════════════════
    # LOCKING
    # ═══════════════════════════════════════════════════════════════════════

    def lockUser(self, userId: int) -> User:
        """
        SELECT ... FOR UPDATE on the user row and refresh loaded state.

        Raises:
            NotFoundError: If user does not exist
        """
        user = self.session.query(User).filter_by(
            userID=userId
        ).populate_existing().with_for_update().first()

        if not user:
            raise NotFoundError(f"User {userId} not found")

        return user

    def lockUsers(self, userIds: Iterable[int]) -> Dict[int, User]:
        """Lock several users in ascending id order."""
        locked = {}
        for userId in sorted(set(userIds)):
            locked[userId] = self.lockUser(userId)
        return locked

    # ═══════════════════════════════════════════════════════════════════════
    # POSTING
    # ═══════════════════════════════════════════════════════════════════════

    def findByIdempotencyKey(self, idempotencyKey: str) -> Optional[LedgerTransaction]:
        return self.session.query(LedgerTransaction).filter_by(
            idempotencyKey=idempotencyKey
        ).first()

    def post(
            self,
            userId: int,
            amount: Any,
            transactionType: str,
            description: str,
            status: str = "completed",
            referenceType: Optional[str] = None,
            referenceId: Optional[Any] = None,
            idempotencyKey: Optional[str] = None,
            metadata: Optional[Dict[str, Any]] = None,
            earningsFields: Iterable[str] = ()
    ) -> LedgerTransaction:
        """
        Apply a signed delta to the user's wallet and journal it.

        Args:
            userId: Account to post to
            amount: Signed amount (credit > 0, debit < 0)
            transactionType: TransactionType value
            description: Human-readable description
            status: Ledger row status
            referenceType: Originating record kind
            referenceId: Originating record id
            idempotencyKey: Optional unique key; a repeated key is a no-op
            metadata: JSON audit context
            earningsFields: Earnings counters to move together with the wallet

        Returns:
            The new LedgerTransaction, or the existing one for a repeated key

        Raises:
            InsufficientBalanceError: If the debit would make the balance negative
            NotFoundError: If user does not exist
        """
        amount = to_money(amount)

        for field in earningsFields:
            if field not in EARNINGS_FIELDS:
                raise ValidationError(f"Unknown earnings field: {field}")

        if idempotencyKey:
            existing = self.findByIdempotencyKey(idempotencyKey)
            if existing:
                logger.info(f"Ledger key {idempotencyKey} already posted, skipping")
                return existing

        user = self.lockUser(userId)

        # Re-check under the lock: a concurrent poster may have won the race
        if idempotencyKey:
            existing = self.findByIdempotencyKey(idempotencyKey)
            if existing:
                logger.info(f"Ledger key {idempotencyKey} already posted, skipping")
                return existing

        balance_before = to_money(user.walletBalance)
        balance_after = balance_before + amount

        if balance_after < 0:
            raise InsufficientBalanceError(
                f"Insufficient balance. Available: ${balance_before}, required: ${-amount}"
            )

        with ledger_write():
            user.walletBalance = balance_after
            for field in earningsFields:
                setattr(user, field, to_money(getattr(user, field)) + amount)

        transaction = LedgerTransaction(
            userID=userId,
            transactionType=transactionType,
            amount=amount,
            description=description,
            status=status,
            referenceType=referenceType,
            referenceID=str(referenceId) if referenceId is not None else None,
            balanceBefore=balance_before,
            balanceAfter=balance_after,
            idempotencyKey=idempotencyKey,
            meta=metadata
        )
        self.session.add(transaction)
        self.session.flush()

        logger.info(
            f"Ledger post: user={userId}, type={transactionType}, "
            f"amount={amount}, balance {balance_before} → {balance_after}"
        )

        return transaction

    def record(
            self,
            userId: int,
            transactionType: str,
            description: str,
            status: str = "completed",
            referenceType: Optional[str] = None,
            referenceId: Optional[Any] = None,
            metadata: Optional[Dict[str, Any]] = None
    ) -> LedgerTransaction:
        """Append a zero-delta journal row (audit only, wallet untouched)."""
        user = self.session.query(User).filter_by(userID=userId).first()
        if not user:
            raise NotFoundError(f"User {userId} not found")

        balance = to_money(user.walletBalance)
        transaction = LedgerTransaction(
            userID=userId,
            transactionType=transactionType,
            amount=Decimal("0.00"),
            description=description,
            status=status,
            referenceType=referenceType,
            referenceID=str(referenceId) if referenceId is not None else None,
            balanceBefore=balance,
            balanceAfter=balance,
            meta=metadata
        )
        self.session.add(transaction)
        self.session.flush()

        return transaction

    # ═══════════════════════════════════════════════════════════════════════
    # RECONCILIATION
    # ═══════════════════════════════════════════════════════════════════════

    def getLedgerSum(self, userId: int) -> Decimal:
        """SUM(amount) over every journal row of the user, any status."""
        total = self.session.query(
            func.sum(LedgerTransaction.amount)
        ).filter(
            LedgerTransaction.userID == userId
        ).scalar()

        return to_money(total)

    def reconcileUser(self, userId: int) -> Dict[str, Any]:
        """
        Compare wallet balance with the journal.

        Returns:
            Dict with wallet_balance, ledger_sum, difference, consistent
        """
        user = self.session.query(User).filter_by(userID=userId).first()
        if not user:
            raise NotFoundError(f"User {userId} not found")

        wallet = to_money(user.walletBalance)
        ledger_sum = self.getLedgerSum(userId)
        difference = wallet - ledger_sum

        if difference != 0:
            logger.error(
                f"Ledger mismatch for user {userId}: wallet={wallet}, "
                f"ledger={ledger_sum}, diff={difference}"
            )

        return {
            "wallet_balance": wallet,
            "ledger_sum": ledger_sum,
            "difference": difference,
            "consistent": difference == 0
        }

    def reconcileAll(self) -> List[int]:
        """Return ids of users whose wallet does not match the journal."""
        mismatched = []
        for (userId,) in self.session.query(User.userID).order_by(User.userID).all():
            if not self.reconcileUser(userId)["consistent"]:
                mismatched.append(userId)
        return mismatched
