# mlm_system/services/volume_service.py
"""
Binary volume service - placement and upward volume propagation.
"""
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
import logging

from models.user import User
from models.binary_tree import BinaryTreeNode
from mlm_system.config.plans import PlanFeature, to_money
from mlm_system.errors import InvalidStateError, NotFoundError, ValidationError
from mlm_system.services.plan_settings_service import PlanSettingsService
from mlm_system.utils.chain_walker import ChainWalker
from mlm_system.utils.binary_log import get_binary_logger

logger = logging.getLogger(__name__)

POSITIONS = ("left", "right")


class BinaryVolumeService:
    """
    Left/right volume accounting on the binary placement tree.

    Volume propagation is a best-effort side effect of an investment:
    it runs after the investment has committed and never raises.
    """

    def __init__(self, session: Session):
        self.session = session
        self.settings = PlanSettingsService(session)
        self.walker = ChainWalker(session)
        self.binaryLog = get_binary_logger()

    # ============================================================
    # PUBLIC API
    # ============================================================

    async def updateBinaryVolume(self, userId: int, investmentAmount) -> int:
        """
        Add investmentAmount to the matching leg of every ancestor.

        Args:
            userId: Investing user
            investmentAmount: Amount of the new investment

        Returns:
            Number of ancestors updated (0 when skipped or failed)
        """
        try:
            if not await self.settings.isPlanActive(PlanFeature.BINARY_PLAN):
                self.binaryLog.info(f"Binary plan inactive, skipping volume update for user {userId}")
                return 0

            amount = to_money(investmentAmount)
            if amount <= 0:
                self.binaryLog.warning(f"Non-positive volume {amount} for user {userId}, skipped")
                return 0

            node = self.walker.get_node(userId)
            if not node:
                self.binaryLog.warning(f"User {userId} has no binary tree node, volume not propagated")
                return 0

            self.binaryLog.info(f"Propagating volume ${amount} from user {userId}")

            def add_volume(ancestor: BinaryTreeNode, side: str, level: int) -> bool:
                if side == "left":
                    values = {
                        BinaryTreeNode.leftVolume: BinaryTreeNode.leftVolume + amount,
                        BinaryTreeNode.leftUnmatched: BinaryTreeNode.leftUnmatched + amount,
                    }
                else:
                    values = {
                        BinaryTreeNode.rightVolume: BinaryTreeNode.rightVolume + amount,
                        BinaryTreeNode.rightUnmatched: BinaryTreeNode.rightUnmatched + amount,
                    }

                # Increment in SQL so concurrent propagations do not lose updates
                self.session.query(BinaryTreeNode).filter_by(
                    nodeID=ancestor.nodeID
                ).update(values, synchronize_session=False)

                self.binaryLog.info(
                    f"  L{level}: user {ancestor.userID} +${amount} on {side}"
                )
                return True

            updated = self.walker.walk_upline(node, add_volume)
            self.session.commit()

            self.binaryLog.info(
                f"Volume ${amount} from user {userId} propagated to {updated} ancestors"
            )
            return updated

        except Exception as e:
            self.session.rollback()
            self.binaryLog.error(
                f"Error updating binary volume for user {userId}: {e}",
                exc_info=True
            )
            return 0

    async def placeUser(
            self,
            userId: int,
            parentUserId: Optional[int] = None,
            position: Optional[str] = None
    ) -> BinaryTreeNode:
        """
        Create the user's node under a parent's free slot.

        Args:
            userId: User to place
            parentUserId: User whose node becomes the parent (None for root)
            position: 'left' or 'right' (required with a parent)

        Returns:
            Created BinaryTreeNode

        Raises:
            NotFoundError: User or parent node missing
            ValidationError: Bad position
            InvalidStateError: User already placed or slot occupied
        """
        user = self.session.query(User).filter_by(userID=userId).first()
        if not user:
            raise NotFoundError(f"User {userId} not found")

        if self.walker.get_node(userId):
            raise InvalidStateError(f"User {userId} is already placed in the binary tree")

        parent_node = None
        if parentUserId is not None:
            if position not in POSITIONS:
                raise ValidationError(f"Invalid position: {position!r}")

            parent_node = self.walker.get_node(parentUserId)
            if not parent_node:
                raise NotFoundError(f"Parent user {parentUserId} has no binary tree node")

            occupied = self.session.query(BinaryTreeNode).filter_by(
                parentID=parent_node.nodeID,
                position=position
            ).first()
            if occupied:
                raise InvalidStateError(
                    f"{position.capitalize()} slot of user {parentUserId} is already occupied"
                )
        else:
            position = None

        node = BinaryTreeNode(
            userID=userId,
            parentID=parent_node.nodeID if parent_node else None,
            position=position,
            leftVolume=Decimal("0"),
            rightVolume=Decimal("0"),
            leftUnmatched=Decimal("0"),
            rightUnmatched=Decimal("0"),
            matchedToDate=Decimal("0")
        )
        self.session.add(node)

        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise InvalidStateError(f"Binary slot for user {userId} was taken concurrently")

        logger.info(
            f"User {userId} placed in binary tree"
            + (f" under user {parentUserId} ({position})" if parent_node else " as root")
        )
        return node
