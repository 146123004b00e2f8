# mlm_system/services/investment_admin_service.py
"""
Admin investment operations: stop with penalty, manual ROI adjustment.
"""
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional
from sqlalchemy.orm import Session
import logging

from models.user_package import UserPackage
from models.investment_stop import InvestmentStop
from mlm_system.config.plans import (
    TransactionType,
    EARLY_STOP_DAYS,
    EARLY_STOP_PENALTY,
    LATE_STOP_PENALTY,
    to_money,
)
from mlm_system.errors import LedgerError, ValidationError, InvalidStateError, NotFoundError, error_code
from mlm_system.services.ledger_service import LedgerService
from mlm_system.utils.time_machine import timeMachine, ensure_utc

logger = logging.getLogger(__name__)


class InvestmentAdminService:
    """Admin-side mutations of user_packages."""

    def __init__(self, session: Session):
        self.session = session
        self.ledger = LedgerService(session)

    def _lockPackage(self, packageId: int) -> UserPackage:
        package = self.session.query(UserPackage).filter_by(
            packageID=packageId
        ).populate_existing().with_for_update().first()

        if not package:
            raise NotFoundError("Investment not found")

        return package

    async def stopInvestment(self, packageId: int, reason: Optional[str] = None) -> Dict[str, Any]:
        """
        Stop an active investment and compute the early-exit penalty.

        Penalty is 15% of the principal within the first 30 days, 5% after.
        The wallet is not touched; principal_remaining is settled elsewhere.

        Returns:
            Result dict; data holds the stop details
        """
        try:
            package = self._lockPackage(packageId)

            if package.status != "active":
                raise InvalidStateError(
                    f"Investment cannot be stopped. Current status: {package.status}"
                )

            stop_date = timeMachine.now
            activation = ensure_utc(package.activationDate or package.createdAt)
            days_active = max(0, (stop_date - activation).days)

            penalty_percentage = EARLY_STOP_PENALTY if days_active <= EARLY_STOP_DAYS else LATE_STOP_PENALTY
            investment_amount = to_money(package.investmentAmount)
            penalty_amount = to_money(investment_amount * penalty_percentage / Decimal("100"))
            principal_remaining = investment_amount - penalty_amount

            package.status = "stopped"
            package.stopDate = stop_date
            package.stopPenaltyPercentage = penalty_percentage
            package.principalRemaining = principal_remaining

            self.session.add(InvestmentStop(
                packageID=packageId,
                userID=package.userID,
                stopDate=stop_date,
                investmentAmount=investment_amount,
                totalRoiEarned=to_money(package.totalRoiEarned),
                daysActive=days_active,
                penaltyPercentage=penalty_percentage,
                penaltyAmount=penalty_amount,
                principalRemaining=principal_remaining,
                reason=reason or "Admin stopped investment"
            ))

            self.session.commit()

            logger.info(
                f"Investment {packageId} stopped: {days_active} days active, "
                f"penalty {penalty_percentage}% (${penalty_amount})"
            )

            return {
                "success": True,
                "message": "Investment stopped successfully by admin",
                "data": {
                    "investment_id": packageId,
                    "days_active": days_active,
                    "penalty_percentage": float(penalty_percentage),
                    "penalty_amount": float(penalty_amount),
                    "principal_remaining": float(principal_remaining),
                }
            }

        except LedgerError as e:
            self.session.rollback()
            logger.warning(f"Stop investment {packageId} refused: {e}")
            return {"success": False, "message": str(e), "code": error_code(e)}

        except Exception as e:
            self.session.rollback()
            logger.error(f"Stop investment {packageId} failed: {e}", exc_info=True)
            return {"success": False, "message": "Failed to stop investment"}

    async def adjustRoi(self, packageId: int, amount: Any, reason: Optional[str] = None) -> Dict[str, Any]:
        """
        Add a manual ROI amount to a package and credit it to the owner.

        Returns:
            Result dict; data holds new_wallet_balance
        """
        try:
            try:
                adjustment = to_money(Decimal(str(amount)))
            except (InvalidOperation, ValueError, TypeError):
                raise ValidationError("Adjustment amount is required")

            if adjustment == 0:
                raise ValidationError("Adjustment amount is required")

            package = self._lockPackage(packageId)
            # Lock order: package → user (inside post)
            package.totalRoiEarned = to_money(package.totalRoiEarned) + adjustment

            transaction = self.ledger.post(
                userId=package.userID,
                amount=adjustment,
                transactionType=TransactionType.ROI_ADJUSTMENT,
                description=f"Admin ROI adjustment - {reason or 'Manual adjustment'}",
                referenceType="investment",
                referenceId=packageId,
                metadata={"reason": reason},
                earningsFields=("totalEarnings", "roiEarnings")
            )

            self.session.commit()
            logger.info(f"Admin adjusted ROI for investment {packageId}: ${adjustment}")

            return {
                "success": True,
                "message": "ROI adjusted successfully",
                "data": {
                    "investment_id": packageId,
                    "amount": float(adjustment),
                    "new_wallet_balance": float(transaction.balanceAfter),
                }
            }

        except LedgerError as e:
            self.session.rollback()
            logger.warning(f"ROI adjustment for {packageId} refused: {e}")
            return {"success": False, "message": str(e), "code": error_code(e)}

        except Exception as e:
            self.session.rollback()
            logger.error(f"ROI adjustment for {packageId} failed: {e}", exc_info=True)
            return {"success": False, "message": "Failed to adjust ROI"}
