# finaster/models/payout.py
"""
Payout model - commission payouts by type.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, ForeignKey
from models.base import Base, AuditMixin


class Payout(Base, AuditMixin):
    __tablename__ = 'payouts'

    payoutID = Column(Integer, primary_key=True, autoincrement=True)
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)

    payoutType = Column(String, nullable=False)  # binary_bonus, booster_reward, roi
    amount = Column(DECIMAL(18, 2), nullable=False)
    description = Column(String, nullable=True)
    status = Column(String, default="completed")

    def __repr__(self):
        return f"<Payout(payoutID={self.payoutID}, type={self.payoutType}, amount={self.amount})>"
