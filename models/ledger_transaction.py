# finaster/models/ledger_transaction.py
"""
LedgerTransaction model - append-only journal of every wallet mutation.

SUM(amount) over a user's rows equals User.walletBalance at all times.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, JSON, ForeignKey
from sqlalchemy.orm import relationship
from models.base import Base, AuditMixin


class LedgerTransaction(Base, AuditMixin):
    __tablename__ = 'mlm_transactions'

    transactionID = Column(Integer, primary_key=True, autoincrement=True)
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)

    transactionType = Column(String, nullable=False, index=True)
    amount = Column(DECIMAL(18, 2), nullable=False)  # signed
    description = Column(String, nullable=True)
    status = Column(String, default="completed")  # pending, completed, cancelled

    # Link back to the originating record
    referenceType = Column(String, nullable=True)  # withdrawal, booster, binary_match, investment, admin_action
    referenceID = Column(String, nullable=True, index=True)

    balanceBefore = Column(DECIMAL(18, 2), nullable=True)
    balanceAfter = Column(DECIMAL(18, 2), nullable=True)

    idempotencyKey = Column(String, unique=True, nullable=True)
    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSON, nullable=True)

    user = relationship('User', backref='ledgerTransactions')

    def __repr__(self):
        return (
            f"<LedgerTransaction(id={self.transactionID}, user={self.userID}, "
            f"type={self.transactionType}, amount={self.amount}, status={self.status})>"
        )
