# mlm_system/services/level_unlock_service.py
"""
Level unlock service - reconciles stored level flags with the direct count.
"""
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import func
import logging

from models.user import User
from models.level_unlock import LevelUnlock, MAX_LEVEL
from mlm_system.utils.level_helpers import (
    calculate_unlocked_levels,
    get_next_unlock_milestone
)

logger = logging.getLogger(__name__)


class LevelUnlockService:
    """
    Level-unlock progression.

    The unlock set is recomputed in full from the direct count on every
    update, so stored flags self-heal regardless of prior state.
    """

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def calculateUnlockedLevels(directCount: int) -> List[int]:
        return calculate_unlocked_levels(directCount)

    @staticmethod
    def getNextUnlockMilestone(directCount: int) -> Optional[Dict[str, Any]]:
        return get_next_unlock_milestone(directCount)

    def _countDirects(self, userId: int) -> int:
        count = self.session.query(func.count(User.userID)).filter(
            User.sponsorID == userId
        ).scalar()
        return int(count or 0)

    async def updateUserLevelUnlocks(self, userId: int) -> Dict[str, Any]:
        """
        Reconcile level flags for the user.

        Returns:
            Dict with success, directCount, unlockedLevels, newUnlocks
        """
        try:
            user = self.session.query(User).filter_by(
                userID=userId
            ).with_for_update().first()

            if not user:
                logger.warning(f"User {userId} not found for level unlock update")
                return {"success": False, "directCount": 0, "unlockedLevels": [], "newUnlocks": []}

            direct_count = self._countDirects(userId)
            should_be_unlocked = calculate_unlocked_levels(direct_count)

            record = self.session.query(LevelUnlock).filter_by(userID=userId).first()
            if record is None:
                record = LevelUnlock(userID=userId)
                self.session.add(record)
                current = []
            else:
                current = record.getUnlockedList()

            new_unlocks = [level for level in should_be_unlocked if level not in current]

            unlocked_set = set(should_be_unlocked)
            for level in range(1, MAX_LEVEL + 1):
                record.setUnlocked(level, level in unlocked_set)

            record.directCount = direct_count
            record.unlockedLevels = len(should_be_unlocked)
            user.directCount = direct_count

            self.session.commit()

            if new_unlocks:
                logger.info(
                    f"User {userId}: {direct_count} directs, new unlocks "
                    f"L{', L'.join(str(level) for level in new_unlocks)}"
                )
            else:
                logger.debug(f"User {userId}: {direct_count} directs, no new unlocks")

            return {
                "success": True,
                "directCount": direct_count,
                "unlockedLevels": should_be_unlocked,
                "newUnlocks": new_unlocks,
            }

        except Exception as e:
            self.session.rollback()
            logger.error(f"Error updating level unlocks for user {userId}: {e}", exc_info=True)
            return {"success": False, "directCount": 0, "unlockedLevels": [], "newUnlocks": []}

    async def getUserLevelUnlocks(self, userId: int) -> Optional[Dict[str, Any]]:
        """
        Stored unlock state, created on first read.

        Returns:
            Dict with directCount, unlockedLevels, totalUnlocked,
            nextMilestone, levelStatus; None if the user does not exist
        """
        record = self.session.query(LevelUnlock).filter_by(userID=userId).first()

        if record is None:
            result = await self.updateUserLevelUnlocks(userId)
            if not result["success"]:
                return None
            record = self.session.query(LevelUnlock).filter_by(userID=userId).first()

        unlocked = record.getUnlockedList()
        return {
            "directCount": record.directCount,
            "unlockedLevels": unlocked,
            "totalUnlocked": len(unlocked),
            "nextMilestone": get_next_unlock_milestone(record.directCount),
            "levelStatus": {level: record.isUnlocked(level) for level in range(1, MAX_LEVEL + 1)},
        }

    async def initializeLevelUnlocksForAllUsers(self) -> Dict[str, Any]:
        """Populate level_unlocks for every user."""
        logger.info("Initializing level unlocks for all users...")

        user_ids = [userId for (userId,) in self.session.query(User.userID).order_by(User.userID).all()]

        processed = 0
        errors = 0
        for userId in user_ids:
            result = await self.updateUserLevelUnlocks(userId)
            if result["success"]:
                processed += 1
            else:
                errors += 1

        logger.info(f"Level unlocks initialized: processed={processed}, errors={errors}")
        return {"success": True, "processed": processed, "errors": errors}
