# tests/test_wallet.py
"""
Tests for the wallet ledger: top-ups, withdrawal tax and the withdrawal
state machine Processing -> Completed | Failed.

Run:
    pytest tests/test_wallet.py -v
"""
from datetime import timedelta
from decimal import Decimal

import pytest

from mlm_system.config.plan import WithdrawalStatus
from mlm_system.errors import (
    OutOfRange, InsufficientBalance, InvalidWithdrawalState, NotFound
)
from mlm_system.events.event_bus import MLMEvents
from mlm_system.services.wallet_service import calculateWithdrawalTax


@pytest.fixture
def funded(founder):
    """Founder with 60,000 in the income wallet."""
    founder.incomeBalance = Decimal("60000")
    return founder


# =============================================================================
# TEST CLASS: Tax
# =============================================================================

class TestWithdrawalTax:

    @pytest.mark.parametrize("amount, tax", [
        ("1", "0.00"),
        ("10000", "0.00"),
        ("10000.01", "500.00"),
        ("50000", "2500.00"),
        ("100000", "10000.00"),
        ("100001", "15000.15"),
    ])
    def test_flat_bracket_on_whole_amount(self, amount, tax):
        """
        TEST: One rate applies to the whole amount, chosen by bracket.
        """
        assert calculateWithdrawalTax(Decimal(amount)) == Decimal(tax)


# =============================================================================
# TEST CLASS: Top-up
# =============================================================================

class TestTopUp:

    @pytest.mark.parametrize("amount", ["10", "50000", "123.45"])
    def test_within_bounds(self, network, founder, amount):
        balance = network.wallet.topUpSpendable(founder.id, amount)
        assert balance == Decimal(amount)
        assert founder.spendableBalance == Decimal(amount)

    @pytest.mark.parametrize("amount", ["9.99", "50000.01", "0", "-10"])
    def test_out_of_bounds(self, network, founder, amount):
        """
        TEST: Amounts outside [10, 50000] raise OutOfRange and change nothing.
        """
        with pytest.raises(OutOfRange):
            network.wallet.topUpSpendable(founder.id, amount)
        assert founder.spendableBalance == 0

    def test_accumulates_and_emits(self, network, founder, bus):
        received = []
        bus.subscribe(MLMEvents.WALLET_TOPPED_UP, received.append)

        network.wallet.topUpSpendable(founder.id, 100)
        network.wallet.topUpSpendable(founder.id, 250)

        assert founder.spendableBalance == Decimal("350")
        assert [e["balance"] for e in received] == [Decimal("100"), Decimal("350")]

    def test_unknown_node(self, network):
        with pytest.raises(NotFound):
            network.wallet.topUpSpendable("CUST404", 100)


# =============================================================================
# TEST CLASS: Withdrawal request
# =============================================================================

class TestWithdrawalRequest:

    def test_request_holds_amount(self, network, funded, frozen_time):
        """
        TEST: Request holds the full amount, records tax and clears in 3 days.
        """
        now = frozen_time.now
        record = network.wallet.requestWithdrawal(funded.id, Decimal("50000"))

        assert record.id == "WDR001"
        assert record.status is WithdrawalStatus.PROCESSING
        assert record.taxAmount == Decimal("2500.00")
        assert record.creditedAmount == Decimal("47500.00")
        assert record.requestedAt == now
        assert record.expectedClearAt == now + timedelta(days=3)
        assert funded.incomeBalance == Decimal("10000")

    def test_insufficient_balance(self, network, funded):
        with pytest.raises(InsufficientBalance):
            network.wallet.requestWithdrawal(funded.id, Decimal("60000.01"))
        assert funded.incomeBalance == Decimal("60000")

    def test_whole_balance_allowed(self, network, funded):
        network.wallet.requestWithdrawal(funded.id, Decimal("60000"))
        assert funded.incomeBalance == 0

    @pytest.mark.parametrize("amount", [0, "-1"])
    def test_non_positive_rejected(self, network, funded, amount):
        with pytest.raises(OutOfRange):
            network.wallet.requestWithdrawal(funded.id, amount)

    def test_history_newest_first(self, network, funded, frozen_time):
        first = network.wallet.requestWithdrawal(funded.id, 100)
        frozen_time.advanceTime(hours=1)
        second = network.wallet.requestWithdrawal(funded.id, 200)

        history = network.wallet.getWithdrawalHistory(funded.id)

        assert [r.id for r in history] == [second.id, first.id]


# =============================================================================
# TEST CLASS: Withdrawal state machine
# =============================================================================

class TestWithdrawalStateMachine:

    def test_complete(self, network, funded, frozen_time):
        record = network.wallet.requestWithdrawal(funded.id, 1000)
        requested_at = frozen_time.now
        frozen_time.advanceTime(days=3)

        network.wallet.completeWithdrawal(record.id)

        assert record.status is WithdrawalStatus.COMPLETED
        assert record.resolvedAt == requested_at + timedelta(days=3)
        assert funded.incomeBalance == Decimal("59000")

    def test_fail_refunds(self, network, funded, bus):
        """
        TEST: Failure returns the held amount to the income wallet.
        """
        received = []
        bus.subscribe(MLMEvents.WITHDRAWAL_FAILED, received.append)
        record = network.wallet.requestWithdrawal(funded.id, 1000)

        network.wallet.failWithdrawal(record.id)

        assert record.status is WithdrawalStatus.FAILED
        assert funded.incomeBalance == Decimal("60000")
        assert received[0]["refunded"] == Decimal("1000")

    @pytest.mark.parametrize("first, second", [
        ("completeWithdrawal", "completeWithdrawal"),
        ("completeWithdrawal", "failWithdrawal"),
        ("failWithdrawal", "completeWithdrawal"),
        ("failWithdrawal", "failWithdrawal"),
    ])
    def test_terminal_states_are_final(self, network, funded, first, second):
        """
        TEST: Only Processing withdrawals can be resolved; no double refund.
        """
        record = network.wallet.requestWithdrawal(funded.id, 1000)
        getattr(network.wallet, first)(record.id)
        balance = funded.incomeBalance

        with pytest.raises(InvalidWithdrawalState):
            getattr(network.wallet, second)(record.id)

        assert funded.incomeBalance == balance

    def test_unknown_withdrawal(self, network):
        with pytest.raises(NotFound):
            network.wallet.completeWithdrawal("WDR999")


# =============================================================================
# TEST CLASS: Wallet journal
# =============================================================================

class TestWalletJournal:

    def test_journal_follows_balance_changes(self, network, funded):
        """
        TEST: Every wallet change lands in the journal with the balance after it.
        """
        network.wallet.topUpSpendable(funded.id, 100)
        record = network.wallet.requestWithdrawal(funded.id, 1000)
        network.wallet.failWithdrawal(record.id)

        journal = network.wallet.getWalletJournal(funded.id)

        assert [(e["wallet"], e["kind"], e["amount"], e["balanceAfter"]) for e in journal] == [
            ("spendable", "top_up", Decimal("100"), Decimal("100")),
            ("income", "withdrawal_hold", Decimal("-1000"), Decimal("59000")),
            ("income", "withdrawal_refund", Decimal("1000"), Decimal("60000")),
        ]
        assert journal[1]["reference"] == record.id

    def test_unknown_node(self, network):
        with pytest.raises(NotFound):
            network.wallet.getWalletJournal("CUST404")
