# tests/test_level_unlock.py
"""
Tests for level-unlock progression.

Run:
    pytest tests/test_level_unlock.py -v
"""
import pytest

from models import LevelUnlock, MAX_LEVEL
from mlm_system.services.level_unlock_service import LevelUnlockService
from mlm_system.utils.level_helpers import calculate_unlocked_levels, get_next_unlock_milestone


# =============================================================================
# TEST CLASS: pure progression
# =============================================================================

class TestCalculateUnlockedLevels:

    @pytest.mark.parametrize("direct_count, expected", [
        (0, []),
        (1, [1]),
        (8, [1, 2, 3, 4, 5, 6, 7, 8]),
        (9, [1, 2, 3, 4, 5, 6, 7, 8, 9, 10]),
        (10, list(range(1, 16))),
        (14, list(range(1, 16))),
        (15, list(range(1, 21))),
        (20, list(range(1, 26))),
        (25, list(range(1, 31))),
        (100, list(range(1, 31))),
    ])
    def test_thresholds(self, direct_count, expected):
        """
        TEST: 9 directs unlock L1..L10; 25 unlock everything.
        """
        assert LevelUnlockService.calculateUnlockedLevels(direct_count) == expected

    def test_monotonic(self):
        """
        TEST: More directs never lock a level.
        """
        previous = set()
        for count in range(0, 40):
            current = set(calculate_unlocked_levels(count))
            assert previous <= current
            previous = current

    def test_next_milestone(self):
        assert get_next_unlock_milestone(9) == {
            "nextThreshold": 10,
            "levelsToUnlock": [11, 12, 13, 14, 15],
            "directsNeeded": 1,
        }
        assert get_next_unlock_milestone(12)["nextThreshold"] == 15
        assert LevelUnlockService.getNextUnlockMilestone(25) is None


# =============================================================================
# TEST CLASS: stored unlock state
# =============================================================================

class TestUpdateUserLevelUnlocks:

    def test_nine_directs(self, session, make_user, run):
        """
        TEST: User with 9 directs gets L1..L10 stored.
        """
        sponsor = make_user()
        for _ in range(9):
            make_user(sponsor=sponsor)

        result = run(LevelUnlockService(session).updateUserLevelUnlocks(sponsor.userID))

        assert result["success"] is True
        assert result["directCount"] == 9
        assert result["unlockedLevels"] == list(range(1, 11))
        assert result["newUnlocks"] == list(range(1, 11))

        record = session.query(LevelUnlock).filter_by(userID=sponsor.userID).one()
        assert record.unlockedLevels == 10
        assert record.isUnlocked(10)
        assert not record.isUnlocked(11)

        session.refresh(sponsor)
        assert sponsor.directCount == 9

    def test_new_unlocks_only_reports_delta(self, session, make_user, run):
        sponsor = make_user()
        service = LevelUnlockService(session)

        make_user(sponsor=sponsor)
        run(service.updateUserLevelUnlocks(sponsor.userID))

        make_user(sponsor=sponsor)
        result = run(service.updateUserLevelUnlocks(sponsor.userID))

        assert result["newUnlocks"] == [2]

    def test_flags_self_heal(self, session, make_user, run):
        """
        TEST: Stray stored flags are overwritten by the recomputed set.
        """
        sponsor = make_user()
        make_user(sponsor=sponsor)
        service = LevelUnlockService(session)
        run(service.updateUserLevelUnlocks(sponsor.userID))

        record = session.query(LevelUnlock).filter_by(userID=sponsor.userID).one()
        record.setUnlocked(30, True)
        session.commit()

        run(service.updateUserLevelUnlocks(sponsor.userID))

        session.expire_all()
        record = session.query(LevelUnlock).filter_by(userID=sponsor.userID).one()
        assert record.getUnlockedList() == [1]

    def test_unknown_user(self, session, run):
        result = run(LevelUnlockService(session).updateUserLevelUnlocks(12345))
        assert result["success"] is False


class TestGetUserLevelUnlocks:

    def test_created_on_first_read(self, session, make_user, run):
        sponsor = make_user()
        for _ in range(3):
            make_user(sponsor=sponsor)

        levels = run(LevelUnlockService(session).getUserLevelUnlocks(sponsor.userID))

        assert levels["directCount"] == 3
        assert levels["unlockedLevels"] == [1, 2, 3]
        assert levels["totalUnlocked"] == 3
        assert levels["nextMilestone"]["nextThreshold"] == 4
        assert len(levels["levelStatus"]) == MAX_LEVEL
        assert levels["levelStatus"][3] is True
        assert levels["levelStatus"][4] is False

    def test_missing_user(self, session, run):
        assert run(LevelUnlockService(session).getUserLevelUnlocks(777)) is None

    def test_initialize_for_all_users(self, session, make_user, run):
        sponsor = make_user()
        make_user(sponsor=sponsor)

        result = run(LevelUnlockService(session).initializeLevelUnlocksForAllUsers())

        assert result == {"success": True, "processed": 2, "errors": 0}
        assert session.query(LevelUnlock).count() == 2
