# mlm_system/tree/node.py
"""
In-memory tree node and its ledger records.
"""
import threading
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from mlm_system.config.plan import Role, Leg, WithdrawalStatus, LEFT, ZERO


@dataclass
class CreditLedgerEntry:
    """Append-only audit line backing Node.rewardCredits."""
    date: datetime
    leg: Leg
    turnoverAtEntry: Decimal
    creditsEarnedThisEntry: int
    runningTotalCredits: int


@dataclass
class WithdrawalRecord:
    """Withdrawal request. Only status and resolvedAt change after creation."""
    id: str
    nodeId: str
    requestedAt: datetime
    amount: Decimal
    taxAmount: Decimal
    creditedAmount: Decimal
    expectedClearAt: datetime
    status: WithdrawalStatus = WithdrawalStatus.PROCESSING
    resolvedAt: Optional[datetime] = None


@dataclass(eq=False)
class Node:
    """
    One participant.

    Structural fields (parentId, leftId, rightId, depth) are written by the
    registry under its write lock. Wallet fields are written under `lock`.
    """
    id: str
    name: str
    contact: str
    role: Role
    depth: int = 0

    parentId: Optional[str] = None
    leftId: Optional[str] = None
    rightId: Optional[str] = None

    sponsorId: Optional[str] = None
    directReferralIds: List[str] = field(default_factory=list)

    purchaseValue: Decimal = ZERO
    legASales: Decimal = ZERO
    legBSales: Decimal = ZERO
    carryForwardA: Decimal = ZERO
    carryForwardB: Decimal = ZERO

    incomeBalance: Decimal = ZERO
    spendableBalance: Decimal = ZERO
    rewardCredits: int = 0
    creditsFromA: int = 0
    creditsFromB: int = 0

    directIncome: Decimal = ZERO
    matchingIncome: Decimal = ZERO

    createdAt: Optional[datetime] = None

    creditHistory: List[CreditLedgerEntry] = field(default_factory=list, repr=False)
    withdrawals: List[WithdrawalRecord] = field(default_factory=list, repr=False)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def isFounder(self) -> bool:
        return self.role is Role.FOUNDER

    def childId(self, side: str) -> Optional[str]:
        return self.leftId if side == LEFT else self.rightId

    def setChild(self, side: str, childId: Optional[str]):
        if side == LEFT:
            self.leftId = childId
        else:
            self.rightId = childId

    def legSales(self, leg: Leg) -> Decimal:
        return self.legASales if leg is Leg.A else self.legBSales

    def addLegSales(self, leg: Leg, amount: Decimal):
        if leg is Leg.A:
            self.legASales += amount
        else:
            self.legBSales += amount

    def addCarryForward(self, leg: Leg, amount: Decimal):
        if leg is Leg.A:
            self.carryForwardA += amount
        else:
            self.carryForwardB += amount

    def creditsFrom(self, leg: Leg) -> int:
        return self.creditsFromA if leg is Leg.A else self.creditsFromB

    def setCreditsFrom(self, leg: Leg, credits: int):
        if leg is Leg.A:
            self.creditsFromA = credits
        else:
            self.creditsFromB = credits

    def summary(self) -> dict:
        """Flat view for presentation."""
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role.value,
            "depth": self.depth,
            "parentId": self.parentId,
            "sponsorId": self.sponsorId,
            "purchaseValue": self.purchaseValue,
        }

    def __repr__(self):
        return f"<Node(id={self.id}, role={self.role.value}, depth={self.depth})>"
