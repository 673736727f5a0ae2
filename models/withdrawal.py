# models/withdrawal.py
"""
Withdrawal model - income wallet withdrawal requests.
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime
from models.base import Base


class Withdrawal(Base):
    __tablename__ = 'withdrawals'

    withdrawalID = Column(String(32), primary_key=True)
    nodeID = Column(String(32), nullable=False, index=True)

    requestedAt = Column(DateTime, nullable=False)
    amount = Column(Numeric(18, 2), nullable=False)
    taxAmount = Column(Numeric(18, 2), nullable=False)
    creditedAmount = Column(Numeric(18, 2), nullable=False)

    status = Column(String(16), nullable=False, default='Processing')  # Processing, Completed, Failed
    expectedClearAt = Column(DateTime, nullable=False)
    resolvedAt = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<Withdrawal(id={self.withdrawalID}, node={self.nodeID}, amount={self.amount}, status={self.status})>"
