# mlm_system/errors.py
"""
Error taxonomy for the referral network engine.
All errors are precondition failures reported to the caller.
"""
from typing import Iterable


class NetworkError(Exception):
    """Base class for engine errors."""
    pass


class DuplicateContact(NetworkError):
    """Contact identifier already registered."""

    def __init__(self, contact: str):
        super().__init__(f"Contact already registered: {contact}")
        self.contact = contact


class InvalidSponsor(NetworkError):
    """Sponsor id does not resolve to a node."""

    def __init__(self, sponsorId: str):
        super().__init__(f"Invalid sponsor: {sponsorId}")
        self.sponsorId = sponsorId


class NoEligibleSlot(NetworkError):
    """Placement search exhausted without an eligible slot."""
    pass


class OutOfRange(NetworkError):
    """Amount outside the allowed bounds."""
    pass


class InsufficientBalance(NetworkError):
    """Withdrawal larger than the income balance."""
    pass


class NotFound(NetworkError):
    """Lookup by id or contact failed."""
    pass


class InvalidWithdrawalState(NetworkError):
    """Withdrawal status transition not allowed."""
    pass


class DurabilityError(NetworkError):
    """
    In-memory mutation succeeded but persisting it failed after all retries.
    The ids stay pending until NodeStore.flushPending() succeeds.
    """

    def __init__(self, nodeIds: Iterable[str], cause: Exception):
        self.nodeIds = sorted(set(nodeIds))
        self.cause = cause
        super().__init__(
            f"Failed to persist nodes {', '.join(self.nodeIds)}: {cause}"
        )
