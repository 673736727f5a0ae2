# models/credit_ledger.py
"""
CreditLedger model - append-only audit trail of reward credits.
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime
from models.base import Base


class CreditLedger(Base):
    __tablename__ = 'credit_ledger'

    entryID = Column(Integer, primary_key=True, autoincrement=True)
    nodeID = Column(String(32), nullable=False, index=True)

    date = Column(DateTime, nullable=False)
    leg = Column(String(1), nullable=False)  # A, B
    turnoverAtEntry = Column(Numeric(18, 2), nullable=False)
    creditsEarnedThisEntry = Column(Integer, nullable=False)
    runningTotalCredits = Column(Integer, nullable=False)

    def __repr__(self):
        return f"<CreditLedger(node={self.nodeID}, leg={self.leg}, earned={self.creditsEarnedThisEntry})>"
