"""Shared fakes for the booking flow."""

import time
from typing import Any, Optional

import pytest

from carvault.delegation import RootIdentity, delegate


def customer_dict(**overrides) -> dict:
    customer = {
        "name": "Asha Rao",
        "email": "asha@example.com",
        "age": 29,
        "country_code": "91",
        "mobile_number": "9876543210",
        "pan": "ABCDE1234F",
        "aadhar": "123456789012",
    }
    customer.update(overrides)
    return customer


def ledger_record(booking_id: int = 42, car_id: int = 7, total_amount: float = 1000.0, **customer) -> dict:
    start = int(time.time()) + 3600
    return {
        "booking_id": booking_id,
        "car_id": car_id,
        "customer": customer_dict(**customer),
        "start_timestamp": start,
        "end_timestamp": start + 86400,
        "total_amount": total_amount,
    }


def booking_payload(wire, **overrides) -> dict:
    start = int(time.time()) + 3600
    body = {
        "name": "Asha Rao",
        "email_address": "asha@example.com",
        "pan": "ABCDE1234F",
        "age": 29,
        "aadhar": "123456789012",
        "mobile_number": "9876543210",
        "country_code": 91,
        "car_id": 7,
        "start_time": start,
        "end_time": start + 86400,
        "delegated_identity": wire.to_dict(),
    }
    body.update(overrides)
    return body


def callback_params(booking_id: int = 42, **overrides) -> dict:
    params = {
        "razorpay_payment_id": "pay_123",
        "razorpay_payment_link_id": "plink_456",
        "razorpay_payment_link_reference_id": str(booking_id),
        "razorpay_payment_link_status": "paid",
        "razorpay_signature": "sig",
    }
    params.update(overrides)
    return params


class FakeLedger:
    """Scripted LedgerTransport recording every call."""

    def __init__(self):
        self.calls: list[dict[str, Any]] = []
        self.replies: dict[str, Any] = {}
        self.failures: dict[str, Exception] = {}

    async def call(self, method, args, *, identity, idempotency_key=None):
        self.calls.append({
            "method": method,
            "args": args,
            "identity": identity,
            "idempotency_key": idempotency_key,
        })
        if method in self.failures:
            raise self.failures[method]
        return self.replies[method]

    def methods(self) -> list[str]:
        return [c["method"] for c in self.calls]


class FakePayments:
    def __init__(self, url: str = "https://rzp.io/i/abc123"):
        self.url = url
        self.calls: list[tuple[float, int]] = []
        self.error: Optional[Exception] = None

    async def create_payment_link(self, amount, booking_id):
        self.calls.append((amount, booking_id))
        if self.error:
            raise self.error
        return self.url


class FakeNotifier:
    def __init__(self, error: Optional[Exception] = None):
        self.sent = []
        self.error = error

    async def notify(self, transaction):
        self.sent.append(transaction)
        if self.error:
            raise self.error


class FakeMetrics:
    def __init__(self, error: Optional[Exception] = None):
        self.successes = 0
        self.failures = 0
        self.error = error

    def record_success(self):
        if self.error:
            raise self.error
        self.successes += 1

    def record_failure(self):
        if self.error:
            raise self.error
        self.failures += 1


@pytest.fixture
def root():
    return RootIdentity.generate()


@pytest.fixture
def admin_root():
    return RootIdentity.generate()


@pytest.fixture
def wire(root):
    return delegate(root)


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def payments():
    return FakePayments()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def metrics():
    return FakeMetrics()
