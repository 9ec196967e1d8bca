"""
Booking orchestration on top of delegated ledger authority.

Flow A (create_payment_link):
1. Rebuild the caller's delegated identity (fails before any remote call)
2. Ask the ledger to validate availability and quote a total
3. Add the gateway fee and issue a payment link

Flow B (commit_transaction):
1. Reserve the booking with the service's own authority
2. Decode and re-validate the committed record
3. Record the outcome and notify the customer (best effort)

The ledger reserve is the durable commit point. Anything after it is
reported but never undoes the booking.
"""

from __future__ import annotations

import logging
from typing import Optional

from .capability import AdminLedgerHandle, UserLedgerHandle, reserve_idempotency_key
from .delegation import RootIdentity
from .errors import CarvaultError, MalformedLedgerRecordError
from .models import BookingStage, CreateTransactionRequest, PaymentProof, Transaction
from .money import format_inr, payable_amount
from .ports import LedgerTransport, MetricsPort, NotifierPort, PaymentPort

logger = logging.getLogger(__name__)


class TransactionService:
    """Coordinates availability, payment and commit for car bookings."""

    def __init__(
        self,
        transport: LedgerTransport,
        admin_identity: RootIdentity,
        payments: PaymentPort,
        metrics: MetricsPort,
        notifier: NotifierPort,
    ):
        self.transport = transport
        self.payments = payments
        self.metrics = metrics
        self.notifier = notifier
        self._admin_identity = admin_identity

    def get_principal(self) -> str:
        return self._admin_identity.principal

    async def create_payment_link(
        self,
        request: CreateTransactionRequest,
        *,
        now_ns: Optional[int] = None,
    ) -> str:
        handle = UserLedgerHandle.from_wire(self.transport, request.identity, now_ns=now_ns)
        logger.info(
            "Booking %s: car %d for %s",
            BookingStage.VALIDATED.value,
            request.car_id,
            handle.principal(),
        )

        record = await handle.validate_availability(
            request.car_id,
            request.window,
            request.customer(),
        )
        logger.info(
            "Booking %d %s: car %d, quoted %s",
            record.booking_id,
            BookingStage.AVAILABILITY_CHECKED.value,
            record.car_id,
            format_inr(record.total_amount),
        )

        amount = payable_amount(record.total_amount)
        url = await self.payments.create_payment_link(amount, record.booking_id)
        logger.info(
            "Booking %d %s: payable %s",
            record.booking_id,
            BookingStage.PAYMENT_LINK_ISSUED.value,
            format_inr(amount),
        )
        return url

    async def commit_transaction(self, booking_id: int, payment_proof: PaymentProof) -> Transaction:
        logger.info(
            "Booking %d %s: payment %s",
            booking_id,
            BookingStage.PAYMENT_CONFIRMED.value,
            payment_proof.payment_id,
        )
        try:
            handle = AdminLedgerHandle.from_root(self.transport, self._admin_identity)
            record = await handle.reserve(
                booking_id,
                payment_proof,
                idempotency_key=reserve_idempotency_key(booking_id, payment_proof),
            )
        except CarvaultError as e:
            logger.warning("Booking %d reserve failed: %s", booking_id, e)
            self._record_failure()
            raise
        except Exception:
            logger.exception("Booking %d reserve failed unexpectedly", booking_id)
            self._record_failure()
            raise

        try:
            transaction = Transaction.from_ledger_record(record)
        except MalformedLedgerRecordError:
            logger.exception("Booking %d reserved but the ledger record is malformed", booking_id)
            self._record_failure()
            raise
        logger.info("Booking %d %s", transaction.booking_id, BookingStage.RESERVED.value)

        self._record_success()
        try:
            await self.notifier.notify(transaction)
        except Exception as e:
            logger.warning("Booking %d notification failed: %s", transaction.booking_id, e)
        else:
            logger.info("Booking %d %s", transaction.booking_id, BookingStage.NOTIFIED.value)
        return transaction

    def _record_success(self) -> None:
        try:
            self.metrics.record_success()
        except Exception as e:
            logger.warning("Failed to record success metric: %s", e)

    def _record_failure(self) -> None:
        try:
            self.metrics.record_failure()
        except Exception as e:
            logger.warning("Failed to record failure metric: %s", e)
