# mlm_system/services/booster_service.py
"""
Booster income service.
Manages the 30-day booster window and direct referral qualification.
"""
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import func, distinct
import logging

from models.user import User
from models.user_package import UserPackage
from models.booster import Booster
from mlm_system.config.plans import (
    PlanFeature,
    TransactionType,
    BOOSTER_WINDOW_DAYS,
    BOOSTER_REWARD_RATE,
    to_money,
)
from mlm_system.services.ledger_service import LedgerService
from mlm_system.services.plan_settings_service import PlanSettingsService
from mlm_system.utils.time_machine import timeMachine, ensure_utc

logger = logging.getLogger(__name__)

LIVE_STATUSES = ("active", "achieved")


class BoosterService:
    """
    Booster qualification tracker.

    Business Logic:
    - One live (active or achieved) booster per user
    - Window: startDate + 30 days
    - A direct qualifies when active AND holding an active package with
      investmentAmount >= the booster's investment amount
    - Reaching targetDirects inside the window credits 10% of the booster
      investment once and flags the owner's active packages with the bonus ROI
    - Past the window the booster expires without reward

    Failures propagate: the caller must know a booster credit did not happen.
    """

    def __init__(self, session: Session):
        self.session = session
        self.settings = PlanSettingsService(session)
        self.ledger = LedgerService(session)

    # ============================================================
    # LIFECYCLE
    # ============================================================

    async def initializeBooster(
            self,
            userId: int,
            investmentId: Optional[int] = None,
            investmentAmount=None
    ) -> Optional[Booster]:
        """
        Open a booster window for the user's investment.

        Args:
            userId: Booster owner
            investmentId: Linked package (latest active package when omitted)
            investmentAmount: Linked amount (read from the package when omitted)

        Returns:
            Created Booster or None when skipped
        """
        try:
            if not await self.settings.isPlanActive(PlanFeature.BOOSTER_INCOME):
                logger.info("Booster income plan is inactive")
                return None

            config = await self.settings.getBoosterIncomeConfig()
            if not config:
                logger.info("Booster configuration not found")
                return None

            # Serializes concurrent initializations for the same user
            user = self.ledger.lockUser(userId)

            existing = self.session.query(Booster).filter(
                Booster.userID == userId,
                Booster.status.in_(LIVE_STATUSES)
            ).first()

            if existing:
                logger.info(f"User {userId} already has a {existing.status} booster")
                self.session.rollback()
                return None

            if investmentId is None or investmentAmount is None:
                package = self._getPackage(userId, investmentId)
                if package:
                    investmentId = package.packageID
                    investmentAmount = package.investmentAmount

            start_date = timeMachine.now
            booster = Booster(
                userID=userId,
                investmentID=investmentId,
                investmentAmount=to_money(investmentAmount),
                startDate=start_date,
                endDate=start_date + timedelta(days=BOOSTER_WINDOW_DAYS),
                qualifiedDirects=0,
                targetDirects=config.required_directs,
                bonusRoiPercentage=config.bonus_roi_percentage,
                rewardCredited=False,
                status="active"
            )
            self.session.add(booster)

            if user.firstInvestmentDate is None:
                user.firstInvestmentDate = start_date

            self.session.commit()

            logger.info(
                f"Booster initialized for user {userId}: {BOOSTER_WINDOW_DAYS}-day window, "
                f"{config.required_directs} directs required with ≥${booster.investmentAmount}"
            )
            return booster

        except Exception as e:
            self.session.rollback()
            logger.error(f"Error initializing booster for user {userId}: {e}", exc_info=True)
            raise

    def _getPackage(self, userId: int, packageId: Optional[int]) -> Optional[UserPackage]:
        query = self.session.query(UserPackage).filter(UserPackage.userID == userId)
        if packageId is not None:
            return query.filter(UserPackage.packageID == packageId).first()

        return query.filter(
            UserPackage.status == "active"
        ).order_by(
            UserPackage.createdAt.desc(),
            UserPackage.packageID.desc()
        ).first()

    async def updateBoosterDirectCount(self, sponsorId: int) -> Optional[Dict[str, Any]]:
        """
        Recount qualified directs and credit the reward when reached in time.

        Args:
            sponsorId: Booster owner

        Returns:
            Booster state dict, or None when the user has no active booster
        """
        try:
            # Lock order: user → booster
            self.ledger.lockUser(sponsorId)

            booster = self.session.query(Booster).filter(
                Booster.userID == sponsorId,
                Booster.status == "active"
            ).populate_existing().with_for_update().first()

            if not booster:
                self.session.rollback()
                return None

            days_remaining = self._daysRemaining(booster)

            if days_remaining == 0:
                booster.status = "expired"
                self.session.commit()
                logger.info(f"Booster {booster.boosterID} expired for user {sponsorId}")
                return self._toDict(booster)

            threshold = to_money(booster.investmentAmount)
            qualified = self._countQualifiedDirects(sponsorId, threshold)
            booster.qualifiedDirects = qualified

            logger.info(
                f"Booster check for {sponsorId}: {qualified}/{booster.targetDirects} "
                f"qualified directs (≥${threshold}), {days_remaining} days remaining"
            )

            if qualified >= booster.targetDirects and not booster.rewardCredited:
                self._creditReward(booster, qualified)

            self.session.commit()
            return self._toDict(booster)

        except IntegrityError:
            # Duplicate booster_reward key: another run already credited it
            self.session.rollback()
            logger.warning(f"Booster reward for user {sponsorId} already credited, skipping")
            booster = self.session.query(Booster).filter(
                Booster.userID == sponsorId,
                Booster.status.in_(LIVE_STATUSES)
            ).order_by(Booster.boosterID.desc()).first()
            return self._toDict(booster) if booster else None

        except Exception as e:
            self.session.rollback()
            logger.error(f"Error updating booster for user {sponsorId}: {e}", exc_info=True)
            raise

    def _countQualifiedDirects(self, sponsorId: int, threshold: Decimal) -> int:
        count = self.session.query(
            func.count(distinct(User.userID))
        ).join(
            UserPackage, UserPackage.userID == User.userID
        ).filter(
            User.sponsorID == sponsorId,
            User.isActive == True,
            UserPackage.status == "active",
            UserPackage.investmentAmount >= threshold
        ).scalar()

        return int(count or 0)

    def _creditReward(self, booster: Booster, qualified: int):
        reward = to_money(to_money(booster.investmentAmount) * BOOSTER_REWARD_RATE)

        transaction = self.ledger.post(
            userId=booster.userID,
            amount=reward,
            transactionType=TransactionType.BOOSTER_REWARD,
            description=f"Booster achievement reward - {qualified} qualified directs",
            referenceType="booster",
            referenceId=booster.boosterID,
            idempotencyKey=f"booster_reward_{booster.boosterID}",
            metadata={
                "qualified_directs": qualified,
                "target_directs": booster.targetDirects,
                "investment_amount": str(booster.investmentAmount),
            },
            earningsFields=("totalEarnings", "boosterEarnings")
        )

        booster.status = "achieved"
        booster.rewardCredited = True
        booster.rewardAmount = transaction.amount
        booster.achievedDate = timeMachine.now

        self.session.query(UserPackage).filter(
            UserPackage.userID == booster.userID,
            UserPackage.status == "active"
        ).update({
            UserPackage.hasBooster: True,
            UserPackage.boosterRoiPercentage: booster.bonusRoiPercentage
        }, synchronize_session=False)

        logger.info(
            f"Booster achieved for {booster.userID}: {qualified}/{booster.targetDirects} "
            f"qualified directs, reward ${transaction.amount}"
        )

    # ============================================================
    # DAILY EXPIRY
    # ============================================================

    async def expireBoostersDaily(self) -> int:
        """
        Expire every active booster whose endDate has been reached.

        Returns:
            Number of boosters expired
        """
        try:
            now = timeMachine.now
            expired = self.session.query(Booster).filter(
                Booster.status == "active",
                Booster.endDate <= now
            ).with_for_update().all()

            if not expired:
                self.session.commit()
                return 0

            affected_users = set()
            for booster in expired:
                booster.status = "expired"
                affected_users.add(booster.userID)

            # Keep the bonus rate for users who still own an achieved booster
            achieved_users = {
                userId for (userId,) in self.session.query(Booster.userID).filter(
                    Booster.userID.in_(affected_users),
                    Booster.status == "achieved"
                ).all()
            }
            to_clear = affected_users - achieved_users

            if to_clear:
                self.session.query(UserPackage).filter(
                    UserPackage.userID.in_(to_clear),
                    UserPackage.status == "active",
                    UserPackage.hasBooster == True
                ).update({
                    UserPackage.hasBooster: False,
                    UserPackage.boosterRoiPercentage: 0
                }, synchronize_session=False)

            self.session.commit()
            logger.info(f"Expired {len(expired)} boosters")
            return len(expired)

        except Exception as e:
            self.session.rollback()
            logger.error(f"Error expiring boosters: {e}", exc_info=True)
            return 0

    # ============================================================
    # READS
    # ============================================================

    async def getBoosterStatus(self, userId: int) -> Optional[Dict[str, Any]]:
        """Latest live booster of the user with current direct count."""
        booster = self.session.query(Booster).filter(
            Booster.userID == userId,
            Booster.status.in_(LIVE_STATUSES)
        ).order_by(
            Booster.createdAt.desc(),
            Booster.boosterID.desc()
        ).first()

        if not booster:
            return None

        result = self._toDict(booster)
        result["direct_count"] = self._countActiveDirects(userId)
        return result

    async def getAllActiveBoosters(self) -> List[Dict[str, Any]]:
        """Live boosters of all users, soonest deadline first (admin view)."""
        rows = self.session.query(Booster, User).join(
            User, User.userID == Booster.userID
        ).filter(
            Booster.status.in_(LIVE_STATUSES)
        ).order_by(Booster.endDate.asc()).all()

        result = []
        for booster, user in rows:
            item = self._toDict(booster)
            item["email"] = user.email
            item["full_name"] = user.fullName
            item["direct_count"] = self._countActiveDirects(user.userID)
            result.append(item)
        return result

    def _countActiveDirects(self, userId: int) -> int:
        count = self.session.query(
            func.count(distinct(User.userID))
        ).join(
            UserPackage, UserPackage.userID == User.userID
        ).filter(
            User.sponsorID == userId,
            User.isActive == True,
            UserPackage.status == "active"
        ).scalar()
        return int(count or 0)

    # ============================================================
    # HELPERS
    # ============================================================

    @staticmethod
    def _daysElapsed(booster: Booster) -> int:
        return (timeMachine.now - ensure_utc(booster.startDate)).days

    def _daysRemaining(self, booster: Booster) -> int:
        return max(0, BOOSTER_WINDOW_DAYS - self._daysElapsed(booster))

    def _toDict(self, booster: Booster) -> Dict[str, Any]:
        return {
            "id": booster.boosterID,
            "user_id": booster.userID,
            "investment_id": booster.investmentID,
            "investment_amount": to_money(booster.investmentAmount),
            "start_date": ensure_utc(booster.startDate).isoformat(),
            "end_date": ensure_utc(booster.endDate).isoformat(),
            "qualified_directs": booster.qualifiedDirects,
            "target_directs": booster.targetDirects,
            "bonus_roi_percentage": booster.bonusRoiPercentage,
            "reward_credited": bool(booster.rewardCredited),
            "reward_amount": booster.rewardAmount,
            "status": booster.status,
            "days_remaining": self._daysRemaining(booster) if booster.status == "active" else 0,
        }
