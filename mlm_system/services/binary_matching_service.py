# mlm_system/services/binary_matching_service.py
"""
Binary matching engine.
Consumes unmatched left/right volume and pays a percentage of the matched volume.
"""
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, Optional
from sqlalchemy.orm import Session
from sqlalchemy import func, and_
import logging

from models.binary_tree import BinaryTreeNode
from models.binary_match import BinaryMatch
from models.payout import Payout
from mlm_system.config.plans import BinaryMatchingConfig, TransactionType, to_money
from mlm_system.services.ledger_service import LedgerService
from mlm_system.services.plan_settings_service import PlanSettingsService
from mlm_system.utils.binary_log import get_binary_logger
from mlm_system.utils.time_machine import timeMachine, ensure_utc

logger = logging.getLogger(__name__)


class BinaryMatchingService:
    """
    Binary matching engine.

    Business Logic:
    - matched_volume = min(left_unmatched, right_unmatched)
    - Nothing happens below min_match_amount
    - payout = matched_volume * payout_percentage / 100
    - A match that would push today's matched volume over max_daily_match
      is skipped entirely (never clipped)
    - One match per user per call; the batch run is the throttle

    Each match runs under the node lock, then the user lock, and commits
    tree update, audit row, payout row and ledger row together.
    """

    def __init__(self, session: Session):
        self.session = session
        self.settings = PlanSettingsService(session)
        self.ledger = LedgerService(session)
        self.binaryLog = get_binary_logger()

    # ============================================================
    # SINGLE USER
    # ============================================================

    async def calculateBinaryMatch(
            self,
            userId: int,
            config: Optional[BinaryMatchingConfig] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Execute at most one match for the user.

        Args:
            userId: User whose node is matched
            config: Pre-loaded config (batch run), loaded when omitted

        Returns:
            Match result dict or None when no match was made
        """
        try:
            if config is None:
                config = await self.settings.getBinaryConfig()
            if not config:
                return None

            node = self.session.query(BinaryTreeNode).filter_by(
                userID=userId
            ).populate_existing().with_for_update().first()

            if not node:
                return None

            left_before = to_money(node.leftUnmatched)
            right_before = to_money(node.rightUnmatched)
            matched_volume = min(left_before, right_before)

            if matched_volume <= 0 or matched_volume < config.min_match_amount:
                self.session.rollback()
                return None

            payout_amount = to_money(matched_volume * config.payout_percentage / Decimal("100"))

            today_matched = self._getTodayMatchedVolume(userId)
            if today_matched + matched_volume > config.max_daily_match:
                self.binaryLog.warning(
                    f"Daily match limit exceeded for user {userId}: "
                    f"today={today_matched}, match={matched_volume}, cap={config.max_daily_match}"
                )
                self.session.rollback()
                return None

            left_after = left_before - matched_volume
            right_after = right_before - matched_volume

            node.leftUnmatched = left_after
            node.rightUnmatched = right_after
            node.matchedToDate = to_money(node.matchedToDate) + matched_volume
            node.lastMatchedAt = timeMachine.now

            match = BinaryMatch(
                userID=userId,
                matchedVolume=matched_volume,
                leftVolumeBefore=left_before,
                rightVolumeBefore=right_before,
                leftVolumeAfter=left_after,
                rightVolumeAfter=right_after,
                payoutAmount=payout_amount,
                payoutPercentage=config.payout_percentage
            )
            self.session.add(match)
            self.session.flush()

            if payout_amount > 0:
                self.session.add(Payout(
                    userID=userId,
                    payoutType=TransactionType.BINARY_BONUS,
                    amount=payout_amount,
                    description=f"Binary matching: {matched_volume} volume matched",
                    status="completed"
                ))

                self.ledger.post(
                    userId=userId,
                    amount=payout_amount,
                    transactionType=TransactionType.BINARY_BONUS,
                    description=f"Binary match payout: {matched_volume} volume",
                    referenceType="binary_match",
                    referenceId=match.matchID,
                    metadata={
                        "matched_volume": str(matched_volume),
                        "payout_percentage": str(config.payout_percentage),
                    },
                    earningsFields=("totalEarnings", "binaryEarnings")
                )

            self.session.commit()

            self.binaryLog.info(
                f"Binary match executed for user {userId}: "
                f"{matched_volume} volume → ${payout_amount} payout"
            )

            return {
                "user_id": userId,
                "match_id": match.matchID,
                "matched_volume": matched_volume,
                "payout_amount": payout_amount,
                "left_before": left_before,
                "right_before": right_before,
                "left_after": left_after,
                "right_after": right_after,
            }

        except Exception as e:
            self.session.rollback()
            self.binaryLog.error(f"Binary match error for user {userId}: {e}", exc_info=True)
            return None

    def _getTodayMatchedVolume(self, userId: int) -> Decimal:
        """Sum of matchedVolume within the current UTC day."""
        day_start = timeMachine.startOfDay
        day_end = day_start + timedelta(days=1)

        total = self.session.query(
            func.sum(BinaryMatch.matchedVolume)
        ).filter(
            BinaryMatch.userID == userId,
            BinaryMatch.createdAt >= day_start,
            BinaryMatch.createdAt < day_end
        ).scalar()

        return to_money(total)

    # ============================================================
    # BATCH
    # ============================================================

    async def runBinaryMatchingForAll(self) -> Dict[str, Any]:
        """
        Run one match for every node with enough volume on both legs.
        Least-matched users go first.

        Returns:
            Dict with processed, matched, total_payout
        """
        stats = {"processed": 0, "matched": 0, "total_payout": Decimal("0.00")}

        self.binaryLog.info("Starting binary matching run for all users")

        config = await self.settings.getBinaryConfig()
        if not config:
            self.binaryLog.warning("Binary matching not configured or inactive")
            return stats

        candidates = self.session.query(BinaryTreeNode.userID).filter(
            and_(
                BinaryTreeNode.leftUnmatched >= config.min_match_amount,
                BinaryTreeNode.rightUnmatched >= config.min_match_amount,
                BinaryTreeNode.leftUnmatched > 0,
                BinaryTreeNode.rightUnmatched > 0
            )
        ).order_by(
            BinaryTreeNode.matchedToDate.asc(),
            BinaryTreeNode.nodeID.asc()
        ).all()

        # Release the read before per-user transactions start
        self.session.commit()

        for (userId,) in candidates:
            stats["processed"] += 1
            result = await self.calculateBinaryMatch(userId, config=config)

            if result:
                stats["matched"] += 1
                stats["total_payout"] += result["payout_amount"]

        self.binaryLog.info(
            f"Binary matching summary: {stats['matched']}/{stats['processed']} users matched, "
            f"total payout ${stats['total_payout']}"
        )
        return stats

    # ============================================================
    # STATS
    # ============================================================

    async def getUserBinaryStats(self, userId: int) -> Optional[Dict[str, Any]]:
        """
        Volumes and potential payout for the user's node.

        Returns:
            Stats dict or None if the user is not placed
        """
        node = self.session.query(BinaryTreeNode).filter_by(userID=userId).first()
        if not node:
            return None

        config = await self.settings.getBinaryConfig()

        matchable = min(to_money(node.leftUnmatched), to_money(node.rightUnmatched))
        potential = (
            to_money(matchable * config.payout_percentage / Decimal("100"))
            if config else Decimal("0.00")
        )
        last_matched = ensure_utc(node.lastMatchedAt)

        return {
            "left_volume": to_money(node.leftVolume),
            "right_volume": to_money(node.rightVolume),
            "left_unmatched": to_money(node.leftUnmatched),
            "right_unmatched": to_money(node.rightUnmatched),
            "matched_to_date": to_money(node.matchedToDate),
            "matchable_volume": matchable,
            "potential_payout": potential,
            "last_matched_at": last_matched.isoformat() if last_matched else None,
        }
