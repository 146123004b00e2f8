# finaster/models/withdrawal.py
"""
Withdrawal model - user withdrawal requests and their admin resolution.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from models.base import Base, AuditMixin


class Withdrawal(Base, AuditMixin):
    __tablename__ = 'withdrawals'

    withdrawalID = Column(Integer, primary_key=True, autoincrement=True)
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)

    # Amounts
    requestedAmount = Column(DECIMAL(18, 2), nullable=False)
    deductionPercentage = Column(DECIMAL(6, 2), default=0, nullable=False)
    deductionAmount = Column(DECIMAL(18, 2), default=0, nullable=False)
    finalAmount = Column(DECIMAL(18, 2), nullable=False)

    # Destination
    walletAddress = Column(String, nullable=True)
    paymentMethod = Column(String, default="crypto")
    network = Column(String, default="TRC20")

    status = Column(String, default="pending", index=True)  # pending, approved, rejected, completed
    rejectionReason = Column(String, nullable=True)

    # Resolution
    approvedBy = Column(String, nullable=True)  # admin id
    approvedAt = Column(DateTime, nullable=True)

    user = relationship('User', backref='withdrawals')

    def toDict(self) -> dict:
        return {
            "withdrawal_id": self.withdrawalID,
            "user_id": self.userID,
            "requested_amount": float(self.requestedAmount),
            "deduction_percentage": float(self.deductionPercentage or 0),
            "deduction_amount": float(self.deductionAmount or 0),
            "final_amount": float(self.finalAmount),
            "wallet_address": self.walletAddress,
            "payment_method": self.paymentMethod,
            "network": self.network,
            "status": self.status,
            "rejection_reason": self.rejectionReason,
            "approved_by": self.approvedBy,
            "approved_at": self.approvedAt.isoformat() if self.approvedAt else None,
            "created_at": self.createdAt.isoformat() if self.createdAt else None,
        }

    def __repr__(self):
        return f"<Withdrawal(withdrawalID={self.withdrawalID}, user={self.userID}, amount={self.requestedAmount}, status={self.status})>"
