# models/node.py
"""
NodeRecord model - flat snapshot of one tree node.
Pointers are stored as ids; the registry rebuilds the tree on start.
"""
from sqlalchemy import Column, Integer, String, Numeric, JSON
from models.base import Base, AuditMixin


class NodeRecord(Base, AuditMixin):
    __tablename__ = 'nodes'

    # Insertion order doubles as root-list order for founders
    seq = Column(Integer, primary_key=True, autoincrement=True)
    nodeID = Column(String(32), unique=True, nullable=False, index=True)

    name = Column(String, nullable=False)
    contact = Column(String, unique=True, nullable=False)
    role = Column(String(16), nullable=False, index=True)  # founder, customer, brand_owner
    depth = Column(Integer, nullable=False, default=0)

    # Structure
    parentID = Column(String(32), nullable=True, index=True)
    leftID = Column(String(32), nullable=True)
    rightID = Column(String(32), nullable=True)

    # Attribution
    sponsorID = Column(String(32), nullable=True, index=True)
    logicalParentID = Column(String(32), nullable=True)  # legacy import field, mirrors sponsorID
    directReferrals = Column(JSON, nullable=True)  # ordered list of node ids

    # Turnover
    purchaseValue = Column(Numeric(18, 2), default=0)
    legASales = Column(Numeric(18, 2), default=0)
    legBSales = Column(Numeric(18, 2), default=0)
    carryForwardA = Column(Numeric(18, 2), default=0)
    carryForwardB = Column(Numeric(18, 2), default=0)

    # Wallets
    incomeBalance = Column(Numeric(18, 2), default=0)
    spendableBalance = Column(Numeric(18, 2), default=0)
    rewardCredits = Column(Integer, default=0)
    creditsFromA = Column(Integer, default=0)
    creditsFromB = Column(Integer, default=0)

    # Lifetime income totals
    directIncome = Column(Numeric(18, 2), default=0)
    matchingIncome = Column(Numeric(18, 2), default=0)

    # Note: createdAt, updatedAt - from AuditMixin

    def __repr__(self):
        return f"<NodeRecord(nodeID={self.nodeID}, role={self.role}, parent={self.parentID})>"
