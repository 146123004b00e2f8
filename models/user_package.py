# finaster/models/user_package.py
"""
UserPackage model - a user's investment in a package.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from models.base import Base, AuditMixin


class UserPackage(Base, AuditMixin):
    __tablename__ = 'user_packages'

    packageID = Column(Integer, primary_key=True, autoincrement=True)
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)

    packageName = Column(String, nullable=True)
    investmentAmount = Column(DECIMAL(18, 2), nullable=False)
    status = Column(String, default="active", index=True)  # pending, active, stopped, completed
    activationDate = Column(DateTime, nullable=True)

    # ROI accounting (distribution job lives outside the ledger core)
    totalRoiEarned = Column(DECIMAL(18, 2), default=0, nullable=False)

    # Booster bonus rate applied once the owner's booster is achieved
    hasBooster = Column(Boolean, default=False)
    boosterRoiPercentage = Column(DECIMAL(6, 4), default=0)

    # Stop details
    stopDate = Column(DateTime, nullable=True)
    stopPenaltyPercentage = Column(DECIMAL(6, 2), nullable=True)
    principalRemaining = Column(DECIMAL(18, 2), nullable=True)

    user = relationship('User', backref='packages')

    def __repr__(self):
        return f"<UserPackage(packageID={self.packageID}, user={self.userID}, amount={self.investmentAmount}, status={self.status})>"
