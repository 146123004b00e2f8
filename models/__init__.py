"""
Database models for the Finaster ledger service.
Import all models here for easy access.
"""

# Base and mixins
from models.base import Base, AuditMixin

# Core models
from models.user import User
from models.user_package import UserPackage
from models.ledger_transaction import LedgerTransaction
from models.payout import Payout
from models.plan_setting import PlanSetting
from models.withdrawal import Withdrawal
from models.investment_stop import InvestmentStop

# MLM models
from models.binary_tree import BinaryTreeNode
from models.binary_match import BinaryMatch
from models.booster import Booster
from models.level_unlock import LevelUnlock, MAX_LEVEL

# Event listeners
from models.listeners import register_all_listeners

__all__ = [
    # Base
    'Base',
    'AuditMixin',

    # Core
    'User',
    'UserPackage',
    'LedgerTransaction',
    'Payout',
    'PlanSetting',
    'Withdrawal',
    'InvestmentStop',

    # MLM
    'BinaryTreeNode',
    'BinaryMatch',
    'Booster',
    'LevelUnlock',
    'MAX_LEVEL',

    # Listeners
    'register_all_listeners',
]
