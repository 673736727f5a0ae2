# mlm_system/__init__.py
"""
Referral network engine - binary placement, turnover, rewards and wallets.

Services live in mlm_system.services and are wired together by
core.network_manager.NetworkManager.
"""

# Plan configuration
from mlm_system.config.plan import Role, Leg, WithdrawalStatus

# Errors
from mlm_system.errors import (
    NetworkError,
    DuplicateContact,
    InvalidSponsor,
    NoEligibleSlot,
    OutOfRange,
    InsufficientBalance,
    NotFound,
    InvalidWithdrawalState,
    DurabilityError,
)

# Utilities
from mlm_system.utils.time_machine import timeMachine

# Events
from mlm_system.events.event_bus import eventBus, MLMEvents

__all__ = [
    # Config
    'Role',
    'Leg',
    'WithdrawalStatus',

    # Errors
    'NetworkError',
    'DuplicateContact',
    'InvalidSponsor',
    'NoEligibleSlot',
    'OutOfRange',
    'InsufficientBalance',
    'NotFound',
    'InvalidWithdrawalState',
    'DurabilityError',

    # Utils
    'timeMachine',

    # Events
    'eventBus',
    'MLMEvents',
]
