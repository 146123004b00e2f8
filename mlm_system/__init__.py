# mlm_system/__init__.py
"""
MLM System - ledger-consistent financial core.
"""

# Services
from mlm_system.services.ledger_service import LedgerService
from mlm_system.services.plan_settings_service import PlanSettingsService
from mlm_system.services.volume_service import BinaryVolumeService
from mlm_system.services.binary_matching_service import BinaryMatchingService
from mlm_system.services.booster_service import BoosterService
from mlm_system.services.level_unlock_service import LevelUnlockService
from mlm_system.services.withdrawal_service import WithdrawalService
from mlm_system.services.investment_admin_service import InvestmentAdminService

# Configuration
from mlm_system.config.plans import PlanFeature, TransactionType

# Utilities
from mlm_system.utils.time_machine import timeMachine

# Events
from mlm_system.events.event_bus import eventBus, MLMEvents

__all__ = [
    # Services
    'LedgerService',
    'PlanSettingsService',
    'BinaryVolumeService',
    'BinaryMatchingService',
    'BoosterService',
    'LevelUnlockService',
    'WithdrawalService',
    'InvestmentAdminService',

    # Config
    'PlanFeature',
    'TransactionType',

    # Utils
    'timeMachine',

    # Events
    'eventBus',
    'MLMEvents',
]
