# finaster/models/investment_stop.py
"""
InvestmentStop model - audit trail of admin investment stops.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, DateTime, ForeignKey
from models.base import Base, AuditMixin


class InvestmentStop(Base, AuditMixin):
    __tablename__ = 'investment_stops'

    stopID = Column(Integer, primary_key=True, autoincrement=True)
    packageID = Column(Integer, ForeignKey('user_packages.packageID'), nullable=False, index=True)
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False)

    stopDate = Column(DateTime, nullable=False)
    investmentAmount = Column(DECIMAL(18, 2), nullable=False)
    totalRoiEarned = Column(DECIMAL(18, 2), default=0)
    daysActive = Column(Integer, nullable=False)
    penaltyPercentage = Column(DECIMAL(6, 2), nullable=False)
    penaltyAmount = Column(DECIMAL(18, 2), nullable=False)
    principalRemaining = Column(DECIMAL(18, 2), nullable=False)
    reason = Column(String, nullable=True)

    def __repr__(self):
        return f"<InvestmentStop(stopID={self.stopID}, package={self.packageID}, penalty={self.penaltyPercentage}%)>"
