# finaster/models/booster.py
"""
Booster model - 30-day direct-referral qualification window.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from models.base import Base, AuditMixin


class Booster(Base, AuditMixin):
    __tablename__ = 'boosters'

    boosterID = Column(Integer, primary_key=True, autoincrement=True)
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)

    # Linked investment
    investmentID = Column(Integer, ForeignKey('user_packages.packageID'), nullable=True)
    investmentAmount = Column(DECIMAL(18, 2), default=0, nullable=False)

    # Window
    startDate = Column(DateTime, nullable=False)
    endDate = Column(DateTime, nullable=False)

    # Qualification
    qualifiedDirects = Column(Integer, default=0, nullable=False)
    targetDirects = Column(Integer, default=3, nullable=False)
    bonusRoiPercentage = Column(DECIMAL(6, 4), default=0)

    # Reward - set exactly once
    rewardCredited = Column(Boolean, default=False, nullable=False)
    rewardAmount = Column(DECIMAL(18, 2), nullable=True)
    achievedDate = Column(DateTime, nullable=True)

    status = Column(String, default="active", index=True)  # active, achieved, expired

    user = relationship('User', backref='boosters')
    investment = relationship('UserPackage')

    def __repr__(self):
        return (
            f"<Booster(boosterID={self.boosterID}, user={self.userID}, "
            f"{self.qualifiedDirects}/{self.targetDirects}, status={self.status})>"
        )
