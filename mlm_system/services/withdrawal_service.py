# mlm_system/services/withdrawal_service.py
"""
Withdrawal lifecycle service.
pending → approved | rejected, wallet debited on submit and refunded on reject.
"""
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import func, case
import logging

from models.user import User
from models.withdrawal import Withdrawal
from models.ledger_transaction import LedgerTransaction
from mlm_system.config.plans import TransactionType, get_min_withdrawal, to_money
from mlm_system.errors import (
    LedgerError,
    ValidationError,
    InsufficientBalanceError,
    InvalidStateError,
    NotFoundError,
    error_code,
)
from mlm_system.services.ledger_service import LedgerService
from mlm_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)


def _result(
        success: bool,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        code: Optional[str] = None
) -> Dict[str, Any]:
    result = {"success": success, "message": message}
    if data is not None:
        result["data"] = data
    if code:
        result["code"] = code
    return result


def _parse_amount(value: Any) -> Decimal:
    try:
        amount = Decimal(str(value))
        if not amount.is_finite():
            raise ValidationError(f"Invalid amount: {value!r}")
        # Must fit in cents at context precision
        to_money(amount)
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"Invalid amount: {value!r}")
    return amount


class WithdrawalService:
    """
    Withdrawal request state machine.

    Every mutation runs in one transaction under row locks
    (withdrawal → user) and returns {"success", "message", "data"}.
    Terminal states are never re-processed.
    """

    def __init__(self, session: Session):
        self.session = session
        self.ledger = LedgerService(session)

    # ═══════════════════════════════════════════════════════════════════════
    # USER ACTIONS
    # ═══════════════════════════════════════════════════════════════════════

    async def submitWithdrawalRequest(
            self,
            userId: int,
            requestedAmount: Any,
            walletAddress: Optional[str] = None,
            paymentMethod: Optional[str] = None,
            network: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Debit the wallet and open a pending withdrawal.

        Args:
            userId: Requesting user
            requestedAmount: Amount to withdraw
            walletAddress: Payout address
            paymentMethod: Defaults to crypto
            network: Defaults to TRC20

        Returns:
            Result dict; data holds withdrawal_id, amounts and new_balance
        """
        try:
            amount = _parse_amount(requestedAmount)
            min_withdrawal = get_min_withdrawal()

            user = self.ledger.lockUser(userId)
            current_balance = to_money(user.walletBalance)

            if amount < min_withdrawal:
                raise ValidationError(f"Minimum withdrawal amount is ${min_withdrawal}")

            amount = to_money(amount)
            if amount > current_balance:
                raise InsufficientBalanceError(
                    f"Insufficient balance. Available: ${current_balance}, Requested: ${amount}"
                )

            # No deduction on regular withdrawals
            deduction_percentage = Decimal("0.00")
            deduction_amount = Decimal("0.00")
            final_amount = amount

            withdrawal = Withdrawal(
                userID=userId,
                requestedAmount=amount,
                deductionPercentage=deduction_percentage,
                deductionAmount=deduction_amount,
                finalAmount=final_amount,
                walletAddress=walletAddress,
                paymentMethod=paymentMethod or "crypto",
                network=network or "TRC20",
                status="pending"
            )
            self.session.add(withdrawal)
            self.session.flush()

            transaction = self.ledger.post(
                userId=userId,
                amount=-amount,
                transactionType=TransactionType.WITHDRAWAL_REQUEST,
                description="Withdrawal request pending admin approval",
                status="pending",
                referenceType="withdrawal",
                referenceId=withdrawal.withdrawalID,
                metadata={
                    "requested_amount": float(amount),
                    "deduction_percentage": float(deduction_percentage),
                    "deduction_amount": float(deduction_amount),
                    "final_amount": float(final_amount),
                    "wallet_address": walletAddress,
                    "payment_method": withdrawal.paymentMethod,
                    "network": withdrawal.network,
                }
            )

            self.session.commit()

            logger.info(
                f"Withdrawal request created: {withdrawal.withdrawalID}, user={userId}, "
                f"amount=${amount}, network={withdrawal.network}, final=${final_amount}"
            )

            return _result(
                True,
                f"Withdrawal request submitted successfully. "
                f"You will receive ${final_amount} (pending admin approval).",
                {
                    "withdrawal_id": withdrawal.withdrawalID,
                    "requested_amount": float(amount),
                    "deduction_percentage": float(deduction_percentage),
                    "deduction_amount": float(deduction_amount),
                    "final_amount": float(final_amount),
                    "new_balance": float(transaction.balanceAfter),
                }
            )

        except LedgerError as e:
            self.session.rollback()
            logger.warning(f"Withdrawal request rejected for user {userId}: {e}")
            return _result(False, str(e), code=error_code(e))

        except Exception as e:
            self.session.rollback()
            logger.error(f"Withdrawal request failed for user {userId}: {e}", exc_info=True)
            return _result(False, "Failed to create withdrawal request")

    # ═══════════════════════════════════════════════════════════════════════
    # ADMIN ACTIONS
    # ═══════════════════════════════════════════════════════════════════════

    def _lockWithdrawal(self, withdrawalId: int) -> Withdrawal:
        withdrawal = self.session.query(Withdrawal).filter_by(
            withdrawalID=withdrawalId
        ).populate_existing().with_for_update().first()

        if not withdrawal:
            raise NotFoundError("Withdrawal request not found")

        return withdrawal

    def _getRequestTransaction(self, withdrawalId: int) -> Optional[LedgerTransaction]:
        return self.session.query(LedgerTransaction).filter_by(
            referenceType="withdrawal",
            referenceID=str(withdrawalId),
            transactionType=TransactionType.WITHDRAWAL_REQUEST
        ).first()

    async def approveWithdrawal(self, withdrawalId: int, adminId: Any) -> Dict[str, Any]:
        """
        Mark a pending withdrawal approved. No wallet change.

        Args:
            withdrawalId: Withdrawal to approve
            adminId: Approving admin

        Returns:
            Result dict
        """
        try:
            withdrawal = self._lockWithdrawal(withdrawalId)

            if withdrawal.status != "pending":
                raise InvalidStateError(f"Cannot approve withdrawal with status: {withdrawal.status}")

            withdrawal.status = "approved"
            withdrawal.approvedBy = str(adminId)
            withdrawal.approvedAt = timeMachine.now

            request_tx = self._getRequestTransaction(withdrawalId)
            if request_tx:
                request_tx.status = "completed"
                request_tx.description = f"Withdrawal approved - ${withdrawal.finalAmount} paid"
            else:
                logger.warning(f"Ledger row for withdrawal {withdrawalId} not found")

            self.ledger.record(
                userId=withdrawal.userID,
                transactionType=TransactionType.WITHDRAWAL_COMPLETED,
                description=(
                    f"Withdrawal completed - ${withdrawal.finalAmount} paid to "
                    f"{withdrawal.walletAddress or 'user account'}"
                ),
                referenceType="withdrawal",
                referenceId=withdrawalId,
                metadata={
                    "approved_by": str(adminId),
                    "final_amount": float(withdrawal.finalAmount),
                    "deduction_percentage": float(withdrawal.deductionPercentage or 0),
                    "wallet_address": withdrawal.walletAddress,
                }
            )

            self.session.commit()
            logger.info(f"Withdrawal approved: {withdrawalId} by admin {adminId}")

            return _result(
                True,
                f"Withdrawal approved. ${withdrawal.finalAmount} will be paid to user.",
                withdrawal.toDict()
            )

        except LedgerError as e:
            self.session.rollback()
            logger.warning(f"Withdrawal {withdrawalId} approval refused: {e}")
            return _result(False, str(e), code=error_code(e))

        except Exception as e:
            self.session.rollback()
            logger.error(f"Withdrawal approval failed for {withdrawalId}: {e}", exc_info=True)
            return _result(False, "Failed to approve withdrawal")

    async def rejectWithdrawal(self, withdrawalId: int, adminId: Any, reason: str) -> Dict[str, Any]:
        """
        Refund the full requested amount and mark the withdrawal rejected.

        Args:
            withdrawalId: Withdrawal to reject
            adminId: Rejecting admin
            reason: Rejection reason shown to the user

        Returns:
            Result dict; data holds new_balance
        """
        try:
            withdrawal = self._lockWithdrawal(withdrawalId)

            if withdrawal.status != "pending":
                raise InvalidStateError(f"Cannot reject withdrawal with status: {withdrawal.status}")

            refund_amount = to_money(withdrawal.requestedAmount)

            withdrawal.status = "rejected"
            withdrawal.rejectionReason = reason
            withdrawal.approvedBy = str(adminId)
            withdrawal.approvedAt = timeMachine.now

            request_tx = self._getRequestTransaction(withdrawalId)
            if request_tx:
                request_tx.status = "cancelled"
                request_tx.description = f"Withdrawal rejected - {reason}"

            transaction = self.ledger.post(
                userId=withdrawal.userID,
                amount=refund_amount,
                transactionType=TransactionType.WITHDRAWAL_REFUND,
                description=f"Withdrawal rejected - Amount refunded: {reason}",
                referenceType="withdrawal",
                referenceId=withdrawalId,
                metadata={
                    "rejected_by": str(adminId),
                    "rejection_reason": reason,
                    "refund_amount": float(refund_amount),
                }
            )

            self.session.commit()
            logger.info(
                f"Withdrawal rejected: {withdrawalId} by admin {adminId}, "
                f"reason: {reason}, refunded ${refund_amount}"
            )

            data = withdrawal.toDict()
            data["new_balance"] = float(transaction.balanceAfter)
            return _result(
                True,
                f"Withdrawal rejected. ${refund_amount} refunded to user wallet.",
                data
            )

        except LedgerError as e:
            self.session.rollback()
            logger.warning(f"Withdrawal {withdrawalId} rejection refused: {e}")
            return _result(False, str(e), code=error_code(e))

        except Exception as e:
            self.session.rollback()
            logger.error(f"Withdrawal rejection failed for {withdrawalId}: {e}", exc_info=True)
            return _result(False, "Failed to reject withdrawal")

    async def adminAddFunds(
            self,
            userId: int,
            amount: Any,
            adminId: Any,
            description: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Credit a user's wallet directly (manual correction).
        Authorization is the caller's responsibility.

        Returns:
            Result dict; data holds transaction_id and new_balance
        """
        try:
            credit = _parse_amount(amount)
            if credit <= 0:
                raise ValidationError("Amount must be positive")

            credit = to_money(credit)
            transaction = self.ledger.post(
                userId=userId,
                amount=credit,
                transactionType=TransactionType.ADMIN_ADD_FUND,
                description=description or f"Admin credited ${credit} to wallet",
                referenceType="admin_action",
                referenceId=adminId,
                metadata={
                    "admin_id": str(adminId),
                    "amount": float(credit),
                    "reason": description,
                }
            )

            self.session.commit()
            logger.info(f"Admin {adminId} added ${credit} to user {userId}")

            return _result(
                True,
                f"Successfully added ${credit} to user wallet.",
                {
                    "transaction_id": transaction.transactionID,
                    "amount": float(credit),
                    "new_balance": float(transaction.balanceAfter),
                }
            )

        except LedgerError as e:
            self.session.rollback()
            logger.warning(f"Admin add funds refused for user {userId}: {e}")
            return _result(False, str(e), code=error_code(e))

        except Exception as e:
            self.session.rollback()
            logger.error(f"Admin add funds failed for user {userId}: {e}", exc_info=True)
            return _result(False, "Failed to add funds")

    # ═══════════════════════════════════════════════════════════════════════
    # READS
    # ═══════════════════════════════════════════════════════════════════════

    @staticmethod
    def _withUser(withdrawal: Withdrawal, user: User) -> Dict[str, Any]:
        data = withdrawal.toDict()
        data["email"] = user.email
        data["full_name"] = user.fullName
        data["wallet_balance"] = float(user.walletBalance or 0)
        return data

    async def getPendingWithdrawals(self) -> List[Dict[str, Any]]:
        """Pending requests, oldest first."""
        rows = self.session.query(Withdrawal, User).join(
            User, User.userID == Withdrawal.userID
        ).filter(
            Withdrawal.status == "pending"
        ).order_by(
            Withdrawal.createdAt.asc(),
            Withdrawal.withdrawalID.asc()
        ).all()

        return [self._withUser(w, u) for w, u in rows]

    async def getAllWithdrawals(
            self,
            status: Optional[str] = None,
            limit: int = 100,
            offset: int = 0
    ) -> Dict[str, Any]:
        """Admin listing with optional status filter, newest first."""
        query = self.session.query(Withdrawal, User).join(
            User, User.userID == Withdrawal.userID
        )
        count_query = self.session.query(func.count(Withdrawal.withdrawalID))

        if status:
            query = query.filter(Withdrawal.status == status)
            count_query = count_query.filter(Withdrawal.status == status)

        rows = query.order_by(
            Withdrawal.createdAt.desc(),
            Withdrawal.withdrawalID.desc()
        ).limit(limit).offset(offset).all()

        return {
            "withdrawals": [self._withUser(w, u) for w, u in rows],
            "total": int(count_query.scalar() or 0),
        }

    async def getUserWithdrawals(
            self,
            userId: int,
            status: Optional[str] = None,
            limit: int = 50
    ) -> List[Dict[str, Any]]:
        query = self.session.query(Withdrawal).filter(Withdrawal.userID == userId)
        if status:
            query = query.filter(Withdrawal.status == status)

        withdrawals = query.order_by(
            Withdrawal.createdAt.desc(),
            Withdrawal.withdrawalID.desc()
        ).limit(limit).all()

        return [w.toDict() for w in withdrawals]

    async def getWithdrawalStats(self) -> Dict[str, Any]:
        """Counts and amounts per status."""

        def count_of(status):
            return func.sum(case((Withdrawal.status == status, 1), else_=0))

        def amount_of(status, column):
            return func.sum(case((Withdrawal.status == status, column), else_=0))

        row = self.session.query(
            count_of("pending"),
            amount_of("pending", Withdrawal.finalAmount),
            count_of("approved"),
            amount_of("approved", Withdrawal.finalAmount),
            count_of("rejected"),
            amount_of("rejected", Withdrawal.requestedAmount),
        ).one()

        return {
            "total_pending": int(row[0] or 0),
            "total_pending_amount": float(row[1] or 0),
            "total_approved": int(row[2] or 0),
            "total_approved_amount": float(row[3] or 0),
            "total_rejected": int(row[4] or 0),
            "total_rejected_amount": float(row[5] or 0),
        }
