# finaster/models/user.py
"""
User model - identity, wallet and denormalized earnings.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from models.base import Base, AuditMixin


class User(Base, AuditMixin):
    __tablename__ = 'users'

    # Primary identification
    userID = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, unique=True, nullable=True)
    fullName = Column(String, nullable=True)

    # Referral relation (who invited), distinct from binary placement
    sponsorID = Column(Integer, ForeignKey('users.userID'), nullable=True, index=True)

    # System fields
    isActive = Column(Boolean, default=True, index=True)
    role = Column(String, default="user")  # user, admin

    # Wallet - mutated only through LedgerService.post
    walletBalance = Column(DECIMAL(18, 2), default=0, nullable=False)

    # Denormalized earnings
    totalEarnings = Column(DECIMAL(18, 2), default=0, nullable=False)
    binaryEarnings = Column(DECIMAL(18, 2), default=0, nullable=False)
    boosterEarnings = Column(DECIMAL(18, 2), default=0, nullable=False)
    roiEarnings = Column(DECIMAL(18, 2), default=0, nullable=False)

    # Direct referral count, cached by LevelUnlockService
    directCount = Column(Integer, default=0, nullable=False)

    firstInvestmentDate = Column(DateTime, nullable=True)

    # Note: createdAt, updatedAt - от AuditMixin

    # Relationships
    sponsor = relationship('User', remote_side=[userID], backref='directReferrals')

    def __repr__(self):
        return f"<User(userID={self.userID}, balance={self.walletBalance})>"
