"""
MLM plan configuration and constants.
Feature payloads are loaded from the plan_settings table.
"""
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


class PlanFeature(Enum):
    """Feature keys of the plan_settings table."""
    BINARY_PLAN = "binary_plan"
    BINARY_MATCHING = "binary_matching"
    BOOSTER_INCOME = "booster_income"


class TransactionType:
    """mlm_transactions.transactionType values."""
    BINARY_BONUS = "binary_bonus"
    BOOSTER_REWARD = "booster_reward"
    WITHDRAWAL_REQUEST = "withdrawal_request"
    WITHDRAWAL_COMPLETED = "withdrawal_completed"
    WITHDRAWAL_REFUND = "withdrawal_refund"
    ADMIN_ADD_FUND = "admin_add_fund"
    ROI_ADJUSTMENT = "roi_adjustment"


@dataclass
class BinaryMatchingConfig:
    payout_percentage: Decimal
    min_match_amount: Decimal
    max_daily_match: Decimal
    matching_ratio: str = "1:1"
    cycle_payout: bool = False

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "BinaryMatchingConfig":
        return cls(
            payout_percentage=Decimal(str(payload["payout_percentage"])),
            min_match_amount=Decimal(str(payload.get("min_match_amount", 0))),
            max_daily_match=Decimal(str(payload["max_daily_match"])),
            matching_ratio=str(payload.get("matching_ratio", "1:1")),
            cycle_payout=bool(payload.get("cycle_payout", False)),
        )


@dataclass
class BoosterIncomeConfig:
    required_directs: int = 3
    bonus_roi_percentage: Decimal = Decimal("0.10")

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "BoosterIncomeConfig":
        return cls(
            required_directs=int(payload.get("required_directs") or 3),
            bonus_roi_percentage=Decimal(str(payload.get("bonus_roi_percentage") or "0.10")),
        )


# Constants (these can stay hardcoded as they don't change)
BOOSTER_WINDOW_DAYS = 30
BOOSTER_REWARD_RATE = Decimal("0.10")
DEFAULT_MIN_WITHDRAWAL = Decimal("10")
DEFAULT_MAX_TREE_DEPTH = 30

# Stop-investment penalty: 15% within the first 30 days, 5% afterwards
EARLY_STOP_DAYS = 30
EARLY_STOP_PENALTY = Decimal("15.00")
LATE_STOP_PENALTY = Decimal("5.00")

# direct count threshold → levels unlocked at that threshold
LEVEL_UNLOCK_RULES: Dict[int, List[int]] = {
    1: [1],
    2: [2],
    3: [3],
    4: [4],
    5: [5],
    6: [6],
    7: [7],
    8: [8],
    9: [9, 10],
    10: [11, 12, 13, 14, 15],
    15: [16, 17, 18, 19, 20],
    20: [21, 22, 23, 24, 25],
    25: [26, 27, 28, 29, 30],
}

MONEY = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Convert to Decimal rounded to cents."""
    return Decimal(str(value or 0)).quantize(MONEY)


def get_max_tree_depth() -> int:
    from config import Config
    return int(Config.get(Config.MAX_TREE_DEPTH, DEFAULT_MAX_TREE_DEPTH))


def get_min_withdrawal() -> Decimal:
    from config import Config
    return Decimal(str(Config.get(Config.MIN_WITHDRAWAL, DEFAULT_MIN_WITHDRAWAL)))


def parse_payload(raw: Optional[Any]) -> Dict[str, Any]:
    """plan_settings.payload may come back as a JSON string from some drivers."""
    if raw is None:
        return {}
    if isinstance(raw, str):
        import json
        try:
            return json.loads(raw)
        except ValueError:
            logger.error(f"Invalid plan_settings payload: {raw[:100]}")
            return {}
    return dict(raw)
