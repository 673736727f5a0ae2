# services/node_store.py
"""
Persistence collaborator for the referral network.

Flat snapshots of nodes plus the withdrawal, credit ledger and wallet
journal rows. One operation's nodes and rows go to storage in a single
transaction; writes are retried, and what still fails stays pending until
flushPending() gets it through.
"""
import logging
import threading
from collections import namedtuple
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
from sqlalchemy.exc import SQLAlchemyError

from config import Config
from core.db import get_db_session_ctx
from models.node import NodeRecord
from models.withdrawal import Withdrawal
from models.credit_ledger import CreditLedger
from models.wallet_transaction import WalletTransaction
from mlm_system.config.plan import Role, Leg, WithdrawalStatus, WalletKind, ZERO
from mlm_system.errors import DurabilityError
from mlm_system.tree.node import Node, WithdrawalRecord, CreditLedgerEntry

logger = logging.getLogger(__name__)

# One ledger row to write: model class, column values, upsert or insert
Row = namedtuple("Row", ["model", "values", "merge"])


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; stored times are UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _money(value) -> Decimal:
    return Decimal(str(value)) if value is not None else ZERO


class NodeStore:
    """
    Repository over the SQLAlchemy models.

    Args:
        session_factory: sessionmaker bound to the network's engine
        retryAttempts: attempts per write (defaults to SAVE_RETRY_ATTEMPTS)
    """

    def __init__(self, session_factory, retryAttempts: Optional[int] = None):
        self.session_factory = session_factory
        self.retryAttempts = retryAttempts or Config.get(Config.SAVE_RETRY_ATTEMPTS, 3)

        self._pendingNodeIds = set()
        self._pendingRows: List[Row] = []
        self._pendingLock = threading.Lock()
        # one writer at a time; a node snapshot is written before the next is taken
        self._writeLock = threading.Lock()

    # ============================================================
    # PENDING STATE
    # ============================================================

    @property
    def hasPending(self) -> bool:
        with self._pendingLock:
            return bool(self._pendingNodeIds or self._pendingRows)

    @property
    def pendingNodeIds(self) -> List[str]:
        with self._pendingLock:
            return sorted(self._pendingNodeIds)

    # ============================================================
    # WRITES
    # ============================================================

    def _commit(self, nodes: List[Node], rows: List[Row]):
        """
        Write node snapshots and rows in one transaction, retrying.

        Raises:
            SQLAlchemyError: the last failure once attempts run out
        """
        description = f"{len(nodes)} nodes and {len(rows)} rows"
        lastError = None

        with self._writeLock:
            for attempt in range(1, self.retryAttempts + 1):
                try:
                    with get_db_session_ctx(self.session_factory) as session:
                        self._writeNodes(session, [self._nodeValues(n) for n in nodes])
                        for row in rows:
                            if row.merge:
                                session.merge(row.model(**row.values))
                            else:
                                session.add(row.model(**row.values))
                    return
                except SQLAlchemyError as e:
                    lastError = e
                    logger.warning(
                        f"Persisting {description} failed (attempt {attempt}/{self.retryAttempts}): {e}"
                    )

        logger.error(f"Giving up on persisting {description}", exc_info=lastError)
        raise lastError

    def save(self, nodes: Iterable[Node] = (), rows: Iterable[Row] = ()):
        """
        Persist one operation's nodes and ledger rows together.

        Raises:
            DurabilityError: all attempts failed; everything stays pending
        """
        nodes = list({n.id: n for n in nodes}.values())
        rows = [row for row in rows if row is not None]
        if not nodes and not rows:
            return
        ids = [n.id for n in nodes]

        try:
            self._commit(nodes, rows)
        except SQLAlchemyError as e:
            with self._pendingLock:
                self._pendingNodeIds.update(ids)
                self._pendingRows.extend(rows)
            raise DurabilityError(ids or [row.values["nodeID"] for row in rows], e)

        with self._pendingLock:
            self._pendingNodeIds.difference_update(ids)

    def saveNode(self, node: Node):
        self.save(nodes=[node])

    def saveNodes(self, nodes: Iterable[Node]):
        self.save(nodes=nodes)

    def flushPending(self, registry) -> int:
        """
        Retry everything left pending by earlier failures.

        Args:
            registry: NodeRegistry holding the current node state

        Returns:
            Number of nodes and rows written

        Raises:
            DurabilityError: still failing; everything stays pending
        """
        with self._pendingLock:
            nodeIds = sorted(self._pendingNodeIds)
            rows = list(self._pendingRows)

        if not nodeIds and not rows:
            return 0

        nodes = [registry.get(nodeId) for nodeId in nodeIds]
        nodes = [n for n in nodes if n is not None]

        try:
            self._commit(nodes, rows)
        except SQLAlchemyError as e:
            raise DurabilityError(nodeIds or [row.values["nodeID"] for row in rows], e)

        with self._pendingLock:
            self._pendingNodeIds.difference_update(nodeIds)
            written = {id(row) for row in rows}
            self._pendingRows = [row for row in self._pendingRows if id(row) not in written]

        logger.info(f"Flushed {len(nodeIds)} pending nodes and {len(rows)} rows")
        return len(nodeIds) + len(rows)

    # ============================================================
    # NODES
    # ============================================================

    @staticmethod
    def _nodeValues(node: Node) -> dict:
        return {
            "nodeID": node.id,
            "name": node.name,
            "contact": node.contact,
            "role": node.role.value,
            "depth": node.depth,
            "parentID": node.parentId,
            "leftID": node.leftId,
            "rightID": node.rightId,
            "sponsorID": node.sponsorId,
            "logicalParentID": node.sponsorId,
            "directReferrals": list(node.directReferralIds),
            "purchaseValue": node.purchaseValue,
            "legASales": node.legASales,
            "legBSales": node.legBSales,
            "carryForwardA": node.carryForwardA,
            "carryForwardB": node.carryForwardB,
            "incomeBalance": node.incomeBalance,
            "spendableBalance": node.spendableBalance,
            "rewardCredits": node.rewardCredits,
            "creditsFromA": node.creditsFromA,
            "creditsFromB": node.creditsFromB,
            "directIncome": node.directIncome,
            "matchingIncome": node.matchingIncome,
            "createdAt": node.createdAt,
        }

    @staticmethod
    def _writeNodes(session, snapshots: List[dict]):
        if not snapshots:
            return
        ids = [s["nodeID"] for s in snapshots]
        existing = {
            r.nodeID: r
            for r in session.query(NodeRecord).filter(NodeRecord.nodeID.in_(ids)).all()
        }
        for values in snapshots:
            record = existing.get(values["nodeID"])
            if record is None:
                session.add(NodeRecord(**values))
                # keep seq in creation order for later inserts in this batch
                session.flush()
            else:
                for column, value in values.items():
                    setattr(record, column, value)

    def loadAllNodes(self) -> List[Node]:
        """Load every node in creation order."""
        with get_db_session_ctx(self.session_factory) as session:
            records = session.query(NodeRecord).order_by(NodeRecord.seq).all()
            nodes = [self._toNode(r) for r in records]

        logger.info(f"Loaded {len(nodes)} nodes from storage")
        return nodes

    @staticmethod
    def _toNode(record: NodeRecord) -> Node:
        if record.logicalParentID and record.logicalParentID != record.sponsorID:
            logger.warning(
                f"Node {record.nodeID}: logical parent {record.logicalParentID} "
                f"differs from sponsor {record.sponsorID}; using sponsor"
            )
        return Node(
            id=record.nodeID,
            name=record.name,
            contact=record.contact,
            role=Role(record.role),
            depth=record.depth or 0,
            parentId=record.parentID,
            leftId=record.leftID,
            rightId=record.rightID,
            sponsorId=record.sponsorID,
            directReferralIds=list(record.directReferrals or []),
            purchaseValue=_money(record.purchaseValue),
            legASales=_money(record.legASales),
            legBSales=_money(record.legBSales),
            carryForwardA=_money(record.carryForwardA),
            carryForwardB=_money(record.carryForwardB),
            incomeBalance=_money(record.incomeBalance),
            spendableBalance=_money(record.spendableBalance),
            rewardCredits=record.rewardCredits or 0,
            creditsFromA=record.creditsFromA or 0,
            creditsFromB=record.creditsFromB or 0,
            directIncome=_money(record.directIncome),
            matchingIncome=_money(record.matchingIncome),
            createdAt=_aware(record.createdAt),
        )

    # ============================================================
    # WITHDRAWALS
    # ============================================================

    @staticmethod
    def withdrawalRow(record: WithdrawalRecord) -> Row:
        """Upsert row; status and resolvedAt change after creation."""
        return Row(Withdrawal, {
            "withdrawalID": record.id,
            "nodeID": record.nodeId,
            "requestedAt": record.requestedAt,
            "amount": record.amount,
            "taxAmount": record.taxAmount,
            "creditedAmount": record.creditedAmount,
            "status": record.status.value,
            "expectedClearAt": record.expectedClearAt,
            "resolvedAt": record.resolvedAt,
        }, True)

    def loadAllWithdrawals(self) -> List[WithdrawalRecord]:
        with get_db_session_ctx(self.session_factory) as session:
            rows = session.query(Withdrawal).order_by(Withdrawal.requestedAt).all()
            return [
                WithdrawalRecord(
                    id=row.withdrawalID,
                    nodeId=row.nodeID,
                    requestedAt=_aware(row.requestedAt),
                    amount=_money(row.amount),
                    taxAmount=_money(row.taxAmount),
                    creditedAmount=_money(row.creditedAmount),
                    expectedClearAt=_aware(row.expectedClearAt),
                    status=WithdrawalStatus(row.status),
                    resolvedAt=_aware(row.resolvedAt),
                )
                for row in rows
            ]

    # ============================================================
    # CREDIT LEDGER
    # ============================================================

    @staticmethod
    def creditEntryRow(nodeId: str, entry: CreditLedgerEntry) -> Row:
        return Row(CreditLedger, {
            "nodeID": nodeId,
            "date": entry.date,
            "leg": entry.leg.value,
            "turnoverAtEntry": entry.turnoverAtEntry,
            "creditsEarnedThisEntry": entry.creditsEarnedThisEntry,
            "runningTotalCredits": entry.runningTotalCredits,
        }, False)

    def loadCreditEntries(self) -> Dict[str, List[CreditLedgerEntry]]:
        """Credit ledger grouped by node, oldest entry first."""
        entries: Dict[str, List[CreditLedgerEntry]] = {}
        with get_db_session_ctx(self.session_factory) as session:
            rows = session.query(CreditLedger).order_by(CreditLedger.entryID).all()
            for row in rows:
                entries.setdefault(row.nodeID, []).append(
                    CreditLedgerEntry(
                        date=_aware(row.date),
                        leg=Leg(row.leg),
                        turnoverAtEntry=_money(row.turnoverAtEntry),
                        creditsEarnedThisEntry=row.creditsEarnedThisEntry,
                        runningTotalCredits=row.runningTotalCredits,
                    )
                )
        return entries

    # ============================================================
    # WALLET JOURNAL
    # ============================================================

    @staticmethod
    def walletTransactionRow(
            nodeId: str,
            wallet: str,
            kind: WalletKind,
            amount: Decimal,
            balanceAfter: Decimal,
            reference: Optional[str] = None
    ) -> Row:
        return Row(WalletTransaction, {
            "nodeID": nodeId,
            "wallet": wallet,
            "kind": kind.value,
            "amount": amount,
            "balanceAfter": balanceAfter,
            "reference": reference,
        }, False)

    def loadWalletTransactions(self, nodeId: str) -> List[WalletTransaction]:
        with get_db_session_ctx(self.session_factory) as session:
            return (
                session.query(WalletTransaction)
                .filter_by(nodeID=nodeId)
                .order_by(WalletTransaction.transactionID)
                .all()
            )
