# finaster/models/level_unlock.py
"""
LevelUnlock model - per-user commission level unlock flags (L1..L30).
"""
from sqlalchemy import Column, Integer, Boolean, ForeignKey
from models.base import Base, AuditMixin

MAX_LEVEL = 30


class LevelUnlock(Base, AuditMixin):
    __tablename__ = 'level_unlocks'

    unlockID = Column(Integer, primary_key=True, autoincrement=True)
    userID = Column(Integer, ForeignKey('users.userID'), unique=True, nullable=False)

    directCount = Column(Integer, default=0, nullable=False)
    unlockedLevels = Column(Integer, default=0, nullable=False)  # count of unlocked flags

    # level1Unlocked ... level30Unlocked are attached below

    def isUnlocked(self, level: int) -> bool:
        return bool(getattr(self, f"level{level}Unlocked"))

    def setUnlocked(self, level: int, value: bool):
        setattr(self, f"level{level}Unlocked", bool(value))

    def getUnlockedList(self):
        return [level for level in range(1, MAX_LEVEL + 1) if self.isUnlocked(level)]

    def __repr__(self):
        return f"<LevelUnlock(user={self.userID}, directs={self.directCount}, unlocked={self.unlockedLevels})>"


for _level in range(1, MAX_LEVEL + 1):
    setattr(
        LevelUnlock,
        f"level{_level}Unlocked",
        Column(f"level{_level}Unlocked", Boolean, default=False, nullable=False)
    )
