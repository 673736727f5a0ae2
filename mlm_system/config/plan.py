# mlm_system/config/plan.py
"""
Compensation plan configuration and constants.
"""
from enum import Enum
from decimal import Decimal


class Role(Enum):
    """Participant role. The id prefix encodes it."""
    FOUNDER = "founder"
    CUSTOMER = "customer"
    BRAND_OWNER = "brand_owner"


class Leg(Enum):
    """Franchise leg: A is everything under the left child, B under the right."""
    A = "A"
    B = "B"

    @property
    def side(self) -> str:
        return "left" if self is Leg.A else "right"

    @classmethod
    def from_side(cls, side: str) -> "Leg":
        return cls.A if side == "left" else cls.B


class WithdrawalStatus(Enum):
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    FAILED = "Failed"


class WalletKind(Enum):
    """Journal entry kinds for WalletTransaction."""
    TOP_UP = "top_up"
    WITHDRAWAL_HOLD = "withdrawal_hold"
    WITHDRAWAL_REFUND = "withdrawal_refund"
    MATCHING_PAYOUT = "matching_payout"
    DIRECT_COMMISSION = "direct_commission"


LEFT = "left"
RIGHT = "right"
SIDES = (LEFT, RIGHT)

ID_PREFIXES = {
    Role.FOUNDER: "FOUND",
    Role.CUSTOMER: "CUST",
    Role.BRAND_OWNER: "BRAND",
}
ID_DIGITS = 3  # FOUND001, CUST042, BRAND1000 once past 999

WITHDRAWAL_ID_PREFIX = "WDR"

# Roles allowed to parent a brand owner
BRAND_OWNER_PARENT_ROLES = frozenset({Role.FOUNDER, Role.BRAND_OWNER})

# Brand owners earn direct income only
MATCHING_ROLES = frozenset({Role.FOUNDER, Role.CUSTOMER})

DEFAULT_FOUNDERS = (
    {"id": "FOUND001", "name": "Founder One", "contact": "founder1@network.local"},
    {"id": "FOUND002", "name": "Founder Two", "contact": "founder2@network.local"},
    {"id": "FOUND003", "name": "Founder Three", "contact": "founder3@network.local"},
)

# Reward credit slabs: (width, credits). A slab counts only when fully covered.
REWARD_CREDIT_SLABS = (
    (Decimal("200000"), 10),
    (Decimal("500000"), 15),
    (Decimal("1000000"), 20),
)
REPEATING_SLAB_WIDTH = Decimal("2000000")
REPEATING_SLAB_CREDITS = 25

# Withdrawal tax: (upper bound inclusive, flat rate on the whole amount)
WITHDRAWAL_TAX_BRACKETS = (
    (Decimal("10000"), Decimal("0")),
    (Decimal("50000"), Decimal("0.05")),
    (Decimal("100000"), Decimal("0.10")),
)
WITHDRAWAL_TAX_TOP_RATE = Decimal("0.15")

MONEY_QUANT = Decimal("0.01")
ZERO = Decimal("0")
