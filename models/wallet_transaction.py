# models/wallet_transaction.py
"""
WalletTransaction model - journal of income and spendable wallet changes.
"""
from sqlalchemy import Column, Integer, String, Numeric
from models.base import Base, AuditMixin


class WalletTransaction(Base, AuditMixin):
    __tablename__ = 'wallet_transactions'

    transactionID = Column(Integer, primary_key=True, autoincrement=True)
    nodeID = Column(String(32), nullable=False, index=True)

    wallet = Column(String(16), nullable=False)  # income, spendable
    kind = Column(String(32), nullable=False)  # top_up, withdrawal_hold, withdrawal_refund, matching_payout, direct_commission
    amount = Column(Numeric(18, 2), nullable=False)  # positive or negative
    balanceAfter = Column(Numeric(18, 2), nullable=False)

    reference = Column(String, nullable=True)  # withdrawal id, buyer id, ...

    # Note: createdAt, updatedAt - from AuditMixin

    def __repr__(self):
        return f"<WalletTransaction(node={self.nodeID}, kind={self.kind}, amount={self.amount})>"
