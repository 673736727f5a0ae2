"""
Database models for the referral network.
Import all models here for easy access and so Base.metadata sees every table.
"""

# Base and mixins
from models.base import Base, AuditMixin

# Tree
from models.node import NodeRecord

# Ledgers
from models.withdrawal import Withdrawal
from models.credit_ledger import CreditLedger
from models.wallet_transaction import WalletTransaction

__all__ = [
    # Base
    'Base',
    'AuditMixin',

    # Tree
    'NodeRecord',

    # Ledgers
    'Withdrawal',
    'CreditLedger',
    'WalletTransaction',
]
