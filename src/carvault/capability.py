"""
Typed handles to the remote ledger.

The handle's class is its authentication state:

    LedgerHandle        no identity, no ledger operations
    UserLedgerHandle    a caller's delegated authority: availability checks
    AdminLedgerHandle   the service's own authority: availability checks + reserve

There is no method that converts one into another; a new handle is built
for each authority. User-supplied identities can only produce a
UserLedgerHandle, which has no ``reserve`` attribute at all.
"""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import timedelta
from typing import Any, Optional

from .delegation import (
    ANONYMOUS_PRINCIPAL,
    SHORT_LIVED_MAX_AGE,
    AuthenticatedIdentity,
    DelegatedIdentityWire,
    RootIdentity,
    delegate,
    reconstruct,
)
from .errors import DelegationExpiredError, LedgerCommunicationError, LedgerRejectedError
from .models import BookingWindow, CustomerRecord, LedgerRecord, PaymentProof
from .ports import LedgerTransport

logger = logging.getLogger(__name__)


class LedgerHandle:
    """Unauthenticated handle: a transport with no identity attached."""

    __slots__ = ("_transport",)

    def __init__(self, transport: LedgerTransport):
        self._transport = transport

    def principal(self) -> str:
        return ANONYMOUS_PRINCIPAL

    def __repr__(self) -> str:
        return f"{type(self).__name__}(principal={self.principal()})"


class _AuthenticatedHandle(LedgerHandle):
    __slots__ = ("_identity",)

    def __init__(self, transport: LedgerTransport, identity: AuthenticatedIdentity):
        super().__init__(transport)
        self._identity = identity

    @property
    def identity(self) -> AuthenticatedIdentity:
        return self._identity

    @property
    def expiry_ns(self) -> int:
        return self._identity.expiry_ns

    def principal(self) -> str:
        return self._identity.principal

    async def validate_availability(
        self,
        car_id: int,
        window: BookingWindow,
        customer: CustomerRecord,
    ) -> LedgerRecord:
        """Ask the ledger to hold ``car_id`` for ``window`` and quote a total."""
        return await self._call(
            "validate_availability",
            {
                "car_id": car_id,
                "start_timestamp": window.start.value,
                "end_timestamp": window.end.value,
                "customer": customer.to_dict(),
            },
        )

    async def _call(
        self,
        method: str,
        args: dict[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> LedgerRecord:
        if self._identity.is_expired():
            raise DelegationExpiredError(
                f"Identity {self._identity.principal} expired at {self._identity.expiry_ns}",
                expired_at=self._identity.expiry_ns,
            )
        reply = await self._transport.call(
            method,
            args,
            identity=self._identity,
            idempotency_key=idempotency_key,
        )
        return _decode_result(method, reply)


class UserLedgerHandle(_AuthenticatedHandle):
    """Handle acting with a calling user's delegated authority."""

    __slots__ = ()

    @classmethod
    def from_wire(
        cls,
        transport: LedgerTransport,
        wire: DelegatedIdentityWire,
        *,
        now_ns: Optional[int] = None,
    ) -> UserLedgerHandle:
        return cls(transport, reconstruct(wire, now_ns=now_ns))


class AdminLedgerHandle(_AuthenticatedHandle):
    """Handle acting with the service's own authority. Never built from user input."""

    __slots__ = ()

    @classmethod
    def from_root(
        cls,
        transport: LedgerTransport,
        root: RootIdentity,
        max_age: timedelta = SHORT_LIVED_MAX_AGE,
    ) -> AdminLedgerHandle:
        return cls(transport, reconstruct(delegate(root, max_age)))

    async def reserve(
        self,
        booking_id: int,
        payment_proof: PaymentProof,
        *,
        idempotency_key: Optional[str] = None,
    ) -> LedgerRecord:
        """Commit a held booking after payment. The ledger record is the durable result."""
        key = idempotency_key or reserve_idempotency_key(booking_id, payment_proof)
        return await self._call(
            "reserve",
            {"booking_id": booking_id, "payment": payment_proof.to_dict()},
            idempotency_key=key,
        )


def reserve_idempotency_key(booking_id: int, payment_proof: PaymentProof) -> str:
    """Deterministic dedup key for a commit, stable across client retries."""
    payload = json.dumps(
        {
            "booking_id": booking_id,
            "payment_id": payment_proof.payment_id,
            "payment_link_id": payment_proof.payment_link_id,
        },
        sort_keys=True,
    )
    digest = hashlib.sha256(payload.encode()).hexdigest()[:24]
    return f"reserve-{digest}"


def _decode_result(method: str, reply: Any) -> LedgerRecord:
    if not isinstance(reply, dict):
        raise LedgerCommunicationError(f"Unexpected {method} reply type: {type(reply).__name__}")
    if "Err" in reply:
        logger.info("Ledger rejected %s: %s", method, reply["Err"])
        raise LedgerRejectedError(str(reply["Err"]))
    if "Ok" in reply and isinstance(reply["Ok"], dict):
        return LedgerRecord.from_dict(reply["Ok"])
    raise LedgerCommunicationError(f"Unexpected {method} reply: missing Ok/Err variant")
