# mlm_system/services/wallet_service.py
"""
Wallet ledger - spendable top-ups and income withdrawals.

Withdrawals move through Processing -> Completed | Failed. The amount is
held from the income wallet at request time and refunded on failure.
"""
from datetime import timedelta
from decimal import Decimal
import logging
import threading
from typing import Dict, Iterable, List

from config import Config
from mlm_system.config.plan import (
    WithdrawalStatus, WalletKind,
    WITHDRAWAL_TAX_BRACKETS, WITHDRAWAL_TAX_TOP_RATE,
    WITHDRAWAL_ID_PREFIX, ID_DIGITS, MONEY_QUANT
)
from mlm_system.errors import (
    OutOfRange, InsufficientBalance, NotFound, InvalidWithdrawalState
)
from mlm_system.events.event_bus import eventBus, MLMEvents
from mlm_system.tree.node import WithdrawalRecord
from mlm_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)


def calculateWithdrawalTax(amount) -> Decimal:
    """
    Flat tax on the whole amount, by bracket.

    <= 10,000: 0%; <= 50,000: 5%; <= 100,000: 10%; above: 15%.
    """
    amount = Decimal(str(amount))
    rate = WITHDRAWAL_TAX_TOP_RATE
    for upperBound, bracketRate in WITHDRAWAL_TAX_BRACKETS:
        if amount <= upperBound:
            rate = bracketRate
            break
    return (amount * rate).quantize(MONEY_QUANT)


class WalletService:
    """
    Wallet operations. Each one holds only the owning node's lock, so
    different nodes' wallets change in parallel.
    """

    def __init__(self, registry, store, bus=None):
        self.registry = registry
        self.store = store
        self.bus = bus or eventBus

        self._withdrawals: Dict[str, WithdrawalRecord] = {}
        self._counter = 0
        self._idLock = threading.Lock()

    def restore(self, records: Iterable[WithdrawalRecord]):
        """Index persisted withdrawals and hang them on their nodes."""
        count = 0
        for record in records:
            node = self.registry.get(record.nodeId)
            if node is None:
                logger.warning(f"Withdrawal {record.id} belongs to unknown node {record.nodeId}")
                continue
            node.withdrawals.append(record)
            self._withdrawals[record.id] = record
            suffix = record.id[len(WITHDRAWAL_ID_PREFIX):]
            if suffix.isdigit():
                self._counter = max(self._counter, int(suffix))
            count += 1
        logger.info(f"Restored {count} withdrawals")

    def _nextWithdrawalId(self) -> str:
        with self._idLock:
            self._counter += 1
            return f"{WITHDRAWAL_ID_PREFIX}{self._counter:0{ID_DIGITS}d}"

    # ============================================================
    # SPENDABLE WALLET
    # ============================================================

    def topUpSpendable(self, nodeId: str, amount) -> Decimal:
        """
        Add funds to the spendable wallet.

        Returns:
            New spendable balance

        Raises:
            OutOfRange: amount outside [TOP_UP_MIN, TOP_UP_MAX]
        """
        amount = Decimal(str(amount))
        low = Config.get_decimal(Config.TOP_UP_MIN, "10")
        high = Config.get_decimal(Config.TOP_UP_MAX, "50000")
        if amount < low or amount > high:
            raise OutOfRange(f"Top-up must be between {low} and {high}, got {amount}")

        node = self.registry.byId(nodeId)
        with node.lock:
            node.spendableBalance += amount
            balance = node.spendableBalance

        self.store.save([node], [
            self.store.walletTransactionRow(nodeId, "spendable", WalletKind.TOP_UP, amount, balance)
        ])

        logger.info(f"Top-up {amount} for {nodeId}, spendable balance {balance}")
        self.bus.emit(MLMEvents.WALLET_TOPPED_UP, {
            "nodeId": nodeId,
            "amount": amount,
            "balance": balance,
        })
        return balance

    # ============================================================
    # WITHDRAWALS
    # ============================================================

    def requestWithdrawal(self, nodeId: str, amount) -> WithdrawalRecord:
        """
        Request a withdrawal from the income wallet.

        The full amount is held now; creditedAmount is what reaches the
        participant after tax.

        Raises:
            OutOfRange: amount <= 0
            InsufficientBalance: amount above incomeBalance
        """
        amount = Decimal(str(amount))
        if amount <= 0:
            raise OutOfRange(f"Withdrawal amount must be positive, got {amount}")

        node = self.registry.byId(nodeId)
        tax = calculateWithdrawalTax(amount)

        with node.lock:
            if amount > node.incomeBalance:
                raise InsufficientBalance(
                    f"Node {nodeId} has {node.incomeBalance}, requested {amount}"
                )
            node.incomeBalance -= amount
            balance = node.incomeBalance

            requestedAt = timeMachine.now
            record = WithdrawalRecord(
                id=self._nextWithdrawalId(),
                nodeId=nodeId,
                requestedAt=requestedAt,
                amount=amount,
                taxAmount=tax,
                creditedAmount=amount - tax,
                expectedClearAt=requestedAt + timedelta(
                    days=Config.get(Config.WITHDRAWAL_CLEAR_DAYS, 3)
                ),
            )
            node.withdrawals.append(record)
            self._withdrawals[record.id] = record

        self.store.save([node], [
            self.store.withdrawalRow(record),
            self.store.walletTransactionRow(
                nodeId, "income", WalletKind.WITHDRAWAL_HOLD, -amount, balance, record.id
            ),
        ])

        logger.info(
            f"Withdrawal {record.id} requested by {nodeId}: amount={amount}, "
            f"tax={tax}, credited={record.creditedAmount}"
        )
        self.bus.emit(MLMEvents.WITHDRAWAL_REQUESTED, {
            "withdrawalId": record.id,
            "nodeId": nodeId,
            "amount": amount,
            "taxAmount": tax,
        })
        return record

    def getWithdrawal(self, withdrawalId: str) -> WithdrawalRecord:
        record = self._withdrawals.get(withdrawalId)
        if record is None:
            raise NotFound(f"Withdrawal {withdrawalId} not found")
        return record

    def _resolve(self, withdrawalId: str, status: WithdrawalStatus) -> WithdrawalRecord:
        record = self.getWithdrawal(withdrawalId)
        node = self.registry.byId(record.nodeId)

        with node.lock:
            if record.status is not WithdrawalStatus.PROCESSING:
                raise InvalidWithdrawalState(
                    f"Withdrawal {withdrawalId} is {record.status.value}, not Processing"
                )
            record.status = status
            record.resolvedAt = timeMachine.now
            if status is WithdrawalStatus.FAILED:
                node.incomeBalance += record.amount
            balance = node.incomeBalance

        if status is WithdrawalStatus.FAILED:
            self.store.save([node], [
                self.store.withdrawalRow(record),
                self.store.walletTransactionRow(
                    node.id, "income", WalletKind.WITHDRAWAL_REFUND, record.amount, balance, record.id
                ),
            ])
        else:
            self.store.save(rows=[self.store.withdrawalRow(record)])
        return record

    def completeWithdrawal(self, withdrawalId: str) -> WithdrawalRecord:
        """Processing -> Completed."""
        record = self._resolve(withdrawalId, WithdrawalStatus.COMPLETED)
        logger.info(f"Withdrawal {withdrawalId} completed")
        self.bus.emit(MLMEvents.WITHDRAWAL_COMPLETED, {
            "withdrawalId": withdrawalId,
            "nodeId": record.nodeId,
        })
        return record

    def failWithdrawal(self, withdrawalId: str) -> WithdrawalRecord:
        """Processing -> Failed; the held amount goes back to the income wallet."""
        record = self._resolve(withdrawalId, WithdrawalStatus.FAILED)
        logger.info(f"Withdrawal {withdrawalId} failed, refunded {record.amount} to {record.nodeId}")
        self.bus.emit(MLMEvents.WITHDRAWAL_FAILED, {
            "withdrawalId": withdrawalId,
            "nodeId": record.nodeId,
            "refunded": record.amount,
        })
        return record

    def getWithdrawalHistory(self, nodeId: str) -> List[WithdrawalRecord]:
        """Withdrawals for a node, newest first."""
        node = self.registry.byId(nodeId)
        with node.lock:
            return list(reversed(node.withdrawals))

    def getWalletJournal(self, nodeId: str) -> List[Dict]:
        """Stored balance changes of both wallets, oldest first."""
        self.registry.byId(nodeId)
        return [
            {
                "wallet": entry.wallet,
                "kind": entry.kind,
                "amount": entry.amount,
                "balanceAfter": entry.balanceAfter,
                "reference": entry.reference,
                "createdAt": entry.createdAt,
            }
            for entry in self.store.loadWalletTransactions(nodeId)
        ]
