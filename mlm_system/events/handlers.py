# mlm_system/events/handlers.py
"""
Event handlers for MLM system.
Process events from the event bus.
"""
import logging
from typing import Dict, Any

from core.db import get_session
from models.user import User
from models.user_package import UserPackage
from mlm_system.services.volume_service import BinaryVolumeService
from mlm_system.services.booster_service import BoosterService
from mlm_system.services.level_unlock_service import LevelUnlockService

logger = logging.getLogger(__name__)


async def handle_investment_activated(data: Dict[str, Any]):
    """
    Handle INVESTMENT_ACTIVATED event.

    Runs after the investment has committed. Three independent steps:
    1. Binary volume propagation up the placement tree
    2. Booster window for the investor
    3. Booster recount for the investor's sponsor

    Args:
        data: Event data with 'userId' and 'packageId' keys
    """
    user_id = data.get("userId")
    package_id = data.get("packageId")

    if not user_id or not package_id:
        logger.error(f"INVESTMENT_ACTIVATED event missing userId/packageId: {data}")
        return

    logger.info(f"Processing investment {package_id} of user {user_id}")

    session = get_session()

    try:
        package = session.query(UserPackage).filter_by(
            packageID=package_id,
            userID=user_id
        ).first()

        if not package:
            logger.error(f"Package {package_id} of user {user_id} not found")
            return

        amount = package.investmentAmount
        sponsor_id = session.query(User.sponsorID).filter_by(userID=user_id).scalar()

        # ═══════════════════════════════════════════════════════════
        # STEP 1: Binary volume (never raises)
        # ═══════════════════════════════════════════════════════════
        await BinaryVolumeService(session).updateBinaryVolume(user_id, amount)

        # ═══════════════════════════════════════════════════════════
        # STEP 2: Booster window for the investor
        # ═══════════════════════════════════════════════════════════
        try:
            await BoosterService(session).initializeBooster(user_id, package_id, amount)
        except Exception as e:
            logger.error(
                f"Error initializing booster for user {user_id}: {e}",
                exc_info=True
            )

        # ═══════════════════════════════════════════════════════════
        # STEP 3: Sponsor's booster qualification
        # ═══════════════════════════════════════════════════════════
        if sponsor_id:
            try:
                await BoosterService(session).updateBoosterDirectCount(sponsor_id)
            except Exception as e:
                logger.error(
                    f"Error updating booster of sponsor {sponsor_id}: {e}",
                    exc_info=True
                )

        logger.info(f"✓ Investment {package_id} processed")

    finally:
        session.close()


async def handle_referral_created(data: Dict[str, Any]):
    """
    Handle REFERRAL_CREATED event.

    Args:
        data: Event data with 'userId' (new user) and 'sponsorId'
    """
    user_id = data.get("userId")
    sponsor_id = data.get("sponsorId")

    if not sponsor_id:
        logger.debug(f"REFERRAL_CREATED for user {user_id} without sponsor, nothing to do")
        return

    session = get_session()

    try:
        result = await LevelUnlockService(session).updateUserLevelUnlocks(sponsor_id)
        if result["success"] and result["newUnlocks"]:
            logger.info(f"✓ Sponsor {sponsor_id} unlocked levels {result['newUnlocks']}")

        try:
            await BoosterService(session).updateBoosterDirectCount(sponsor_id)
        except Exception as e:
            logger.error(
                f"Error updating booster of sponsor {sponsor_id}: {e}",
                exc_info=True
            )

    finally:
        session.close()
