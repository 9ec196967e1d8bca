"""
Carvault — delegated ledger authority for car-rental bookings.

A long-lived identity delegates time-boxed signing authority to session keys;
bookings are checked, paid for and committed on the remote ledger with that
authority.
"""

__version__ = "0.1.0"

from .delegation import (
    DELEGATION_MAX_AGE,
    SHORT_LIVED_MAX_AGE,
    AuthenticatedIdentity,
    DelegatedIdentityWire,
    Delegation,
    RootIdentity,
    SignedDelegation,
    delegate,
    delegate_short_lived,
    effective_expiry,
    reconstruct,
    verify_delegation_chain,
)
from .capability import AdminLedgerHandle, LedgerHandle, UserLedgerHandle
from .models import (
    BookingStage,
    CreateTransactionRequest,
    LedgerRecord,
    PaymentProof,
    Transaction,
)
from .service import TransactionService

__all__ = [
    "DELEGATION_MAX_AGE", "SHORT_LIVED_MAX_AGE",
    "RootIdentity", "AuthenticatedIdentity", "DelegatedIdentityWire",
    "Delegation", "SignedDelegation",
    "delegate", "delegate_short_lived", "effective_expiry", "reconstruct", "verify_delegation_chain",
    "LedgerHandle", "UserLedgerHandle", "AdminLedgerHandle",
    "BookingStage", "CreateTransactionRequest", "LedgerRecord", "PaymentProof", "Transaction",
    "TransactionService",
]
