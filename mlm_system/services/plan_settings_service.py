# mlm_system/services/plan_settings_service.py
"""
Plan settings service - feature flags and JSON plan configuration.
"""
from typing import Dict, Optional, Union
from sqlalchemy.orm import Session
import logging

from models.plan_setting import PlanSetting
from mlm_system.config.plans import (
    PlanFeature,
    BinaryMatchingConfig,
    BoosterIncomeConfig,
    parse_payload,
)

logger = logging.getLogger(__name__)


class PlanSettingsService:
    """
    Read-only access to plan_settings with a read-through cache.

    The cache lives as long as the service instance (one request / one job
    run), so flag changes are picked up by the next run without restarts.
    """

    def __init__(self, session: Session):
        self.session = session
        self._cache: Dict[str, Optional[PlanSetting]] = {}

    def _getSetting(self, featureKey: Union[str, PlanFeature]) -> Optional[PlanSetting]:
        key = featureKey.value if isinstance(featureKey, PlanFeature) else featureKey

        if key not in self._cache:
            self._cache[key] = self.session.query(PlanSetting).filter_by(
                featureKey=key
            ).first()

        return self._cache[key]

    def invalidate(self):
        """Drop cached settings."""
        self._cache.clear()

    async def isPlanActive(self, featureKey: Union[str, PlanFeature]) -> bool:
        """
        Check feature flag.

        Args:
            featureKey: plan_settings.featureKey

        Returns:
            True if the row exists and is active
        """
        setting = self._getSetting(featureKey)
        return bool(setting and setting.isActive)

    async def getBinaryConfig(self) -> Optional[BinaryMatchingConfig]:
        """
        Active binary matching configuration.

        Returns:
            BinaryMatchingConfig or None if not configured / inactive
        """
        setting = self._getSetting(PlanFeature.BINARY_MATCHING)
        if not setting or not setting.isActive:
            return None

        try:
            return BinaryMatchingConfig.from_payload(parse_payload(setting.payload))
        except (KeyError, ValueError, ArithmeticError) as e:
            logger.error(f"Invalid binary_matching payload: {e}")
            return None

    async def getBoosterIncomeConfig(self) -> Optional[BoosterIncomeConfig]:
        """
        Active booster configuration.

        Returns:
            BoosterIncomeConfig or None if not configured / inactive
        """
        setting = self._getSetting(PlanFeature.BOOSTER_INCOME)
        if not setting or not setting.isActive:
            return None

        try:
            return BoosterIncomeConfig.from_payload(parse_payload(setting.payload))
        except (ValueError, ArithmeticError) as e:
            logger.error(f"Invalid booster_income payload: {e}")
            return None
