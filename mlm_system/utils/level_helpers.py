# mlm_system/utils/level_helpers.py
"""
Helper functions for level unlock progression.
Pure functions of the direct referral count.
"""
from typing import Dict, List, Optional

from mlm_system.config.plans import LEVEL_UNLOCK_RULES


def calculate_unlocked_levels(direct_count: int) -> List[int]:
    """
    Levels unlocked for a given direct referral count.

    Every threshold is re-evaluated in full, so the result is monotonically
    non-decreasing in direct_count.

    Example:
        calculate_unlocked_levels(9) -> [1, 2, 3, 4, 5, 6, 7, 8, 9, 10]
    """
    unlocked = []
    for threshold, levels in LEVEL_UNLOCK_RULES.items():
        if direct_count >= threshold:
            unlocked.extend(levels)
    return sorted(unlocked)


def get_next_unlock_milestone(direct_count: int) -> Optional[Dict]:
    """
    Next threshold above direct_count.

    Returns:
        {"nextThreshold", "levelsToUnlock", "directsNeeded"} or None when
        all levels are unlocked
    """
    for threshold in sorted(LEVEL_UNLOCK_RULES):
        if direct_count < threshold:
            return {
                "nextThreshold": threshold,
                "levelsToUnlock": list(LEVEL_UNLOCK_RULES[threshold]),
                "directsNeeded": threshold - direct_count,
            }
    return None
