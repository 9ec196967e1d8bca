"""Interfaces the booking service depends on. Adapters live in the *_client modules."""

from __future__ import annotations

from typing import Any, Optional, Protocol

from .delegation import Identity
from .models import Transaction


class LedgerTransport(Protocol):
    """Signed RPC to the remote ledger.

    Returns the decoded reply body. Raises LedgerCommunicationError when the
    ledger cannot be reached or answers with a transport-level failure.
    """

    async def call(
        self,
        method: str,
        args: dict[str, Any],
        *,
        identity: Identity,
        idempotency_key: Optional[str] = None,
    ) -> dict[str, Any]: ...


class PaymentPort(Protocol):
    async def create_payment_link(self, amount: float, booking_id: int) -> str:
        """Return a redirect URL, or raise PaymentLinkError with the gateway's message."""
        ...


class NotifierPort(Protocol):
    async def notify(self, transaction: Transaction) -> None: ...


class MetricsPort(Protocol):
    def record_success(self) -> None: ...

    def record_failure(self) -> None: ...
