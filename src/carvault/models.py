"""
Booking domain values.

Every value object validates itself on construction, so an instance that
exists is a valid one. Aggregates are built from value objects only.
"""

from __future__ import annotations

import math
import re
import time
from dataclasses import InitVar, dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from .delegation import DelegatedIdentityWire
from .errors import (
    AadharError,
    AgeError,
    EmailAddressError,
    EndTimeError,
    InvalidFieldError,
    MalformedLedgerRecordError,
    MobileNumberError,
    PANError,
    StartTimeError,
    UserNameEmptyError,
    ValidationError,
)


_EMAIL_RE = re.compile(r"^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+$")
_PAN_RE = re.compile(r"^[A-Z]{5}[0-9]{4}[A-Z]$")
_AADHAR_RE = re.compile(r"^\d{12}$")
_MOBILE_RE = re.compile(r"^\d{10}$")

MINIMUM_DRIVER_AGE = 18


class BookingStage(str, Enum):
    VALIDATED = "validated"
    AVAILABILITY_CHECKED = "availability_checked"
    PAYMENT_LINK_ISSUED = "payment_link_issued"
    PAYMENT_CONFIRMED = "payment_confirmed"
    RESERVED = "reserved"
    NOTIFIED = "notified"


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UserName:
    value: str

    def __post_init__(self):
        trimmed = str(self.value).strip()
        if not trimmed:
            raise UserNameEmptyError()
        object.__setattr__(self, "value", trimmed)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class EmailAddress:
    value: str

    def __post_init__(self):
        trimmed = str(self.value).strip()
        if not _EMAIL_RE.match(trimmed):
            raise EmailAddressError(trimmed)
        object.__setattr__(self, "value", trimmed)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Age:
    value: int

    def __post_init__(self):
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise AgeError(self.value)
        if self.value < MINIMUM_DRIVER_AGE:
            raise AgeError(self.value)

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class MobileNumber:
    """Ten-digit mobile number, kept as text so leading digits survive."""

    value: str

    def __post_init__(self):
        candidate = str(self.value).strip()
        if not _MOBILE_RE.match(candidate):
            raise MobileNumberError(candidate)
        object.__setattr__(self, "value", candidate)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class PAN:
    value: str

    def __post_init__(self):
        trimmed = str(self.value).strip()
        if not _PAN_RE.match(trimmed):
            raise PANError(trimmed)
        object.__setattr__(self, "value", trimmed)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Aadhar:
    value: str

    def __post_init__(self):
        trimmed = str(self.value).strip()
        if not _AADHAR_RE.match(trimmed):
            raise AadharError(trimmed)
        object.__setattr__(self, "value", trimmed)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class StartTime:
    """Booking start, epoch seconds, strictly after ``now`` (the clock by default)."""

    value: int
    now: InitVar[Optional[int]] = None

    def __post_init__(self, now: Optional[int]):
        current = int(time.time()) if now is None else int(now)
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise StartTimeError(self.value, current)
        if self.value <= current:
            raise StartTimeError(self.value, current)


@dataclass(frozen=True)
class EndTime:
    """Booking end, epoch seconds, strictly after the start."""

    value: int

    @classmethod
    def validate(cls, value: int, start: StartTime | int) -> EndTime:
        start_value = start.value if isinstance(start, StartTime) else int(start)
        if value <= start_value:
            raise EndTimeError(value, start_value)
        return cls(value)

    def __post_init__(self):
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise EndTimeError(self.value, 0)


@dataclass(frozen=True)
class BookingWindow:
    start: StartTime
    end: EndTime

    def __post_init__(self):
        if self.end.value <= self.start.value:
            raise EndTimeError(self.end.value, self.start.value)


# ---------------------------------------------------------------------------
# Ledger wire records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CustomerRecord:
    """Customer as the ledger stores it."""

    name: str
    email: str
    age: int
    country_code: str
    mobile_number: str
    pan: str
    aadhar: str

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "email": self.email,
            "age": self.age,
            "country_code": self.country_code,
            "mobile_number": self.mobile_number,
            "pan": self.pan,
            "aadhar": self.aadhar,
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> CustomerRecord:
        return cls(
            name=str(d["name"]),
            email=str(d["email"]),
            age=int(d["age"]),
            country_code=str(d["country_code"]),
            mobile_number=str(d["mobile_number"]),
            pan=str(d["pan"]),
            aadhar=str(d["aadhar"]),
        )


@dataclass(frozen=True)
class LedgerRecord:
    booking_id: int
    car_id: int
    customer: Optional[CustomerRecord]
    start_timestamp: int
    end_timestamp: int
    total_amount: float

    def to_dict(self) -> dict:
        return {
            "booking_id": self.booking_id,
            "car_id": self.car_id,
            "customer": self.customer.to_dict() if self.customer else None,
            "start_timestamp": self.start_timestamp,
            "end_timestamp": self.end_timestamp,
            "total_amount": self.total_amount,
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> LedgerRecord:
        try:
            customer = d.get("customer")
            record = cls(
                booking_id=int(d["booking_id"]),
                car_id=int(d["car_id"]),
                customer=CustomerRecord.from_dict(customer) if customer else None,
                start_timestamp=int(d["start_timestamp"]),
                end_timestamp=int(d["end_timestamp"]),
                total_amount=float(d.get("total_amount", 0.0)),
            )
        except (KeyError, TypeError, ValueError, OverflowError) as e:
            raise MalformedLedgerRecordError(f"Could not decode ledger record: {e}") from e
        if not math.isfinite(record.total_amount):
            raise MalformedLedgerRecordError(
                f"Ledger record for booking {record.booking_id} has a non-finite total {record.total_amount}"
            )
        return record


@dataclass(frozen=True)
class PaymentProof:
    """Gateway confirmation that a payment link was paid."""

    payment_id: str
    payment_link_id: str
    reference_id: str
    status: str
    signature: str

    @classmethod
    def from_callback(cls, params: Mapping[str, Any]) -> PaymentProof:
        """Build from the gateway's redirect query parameters."""
        try:
            return cls(
                payment_id=str(params["razorpay_payment_id"]),
                payment_link_id=str(params["razorpay_payment_link_id"]),
                reference_id=str(params["razorpay_payment_link_reference_id"]),
                status=str(params["razorpay_payment_link_status"]),
                signature=str(params["razorpay_signature"]),
            )
        except KeyError as e:
            raise InvalidFieldError(str(e.args[0]), "missing from payment confirmation") from e

    def to_dict(self) -> dict:
        return {
            "payment_id": self.payment_id,
            "payment_link_id": self.payment_link_id,
            "reference_id": self.reference_id,
            "status": self.status,
            "signature": self.signature,
        }


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CreateTransactionRequest:
    name: UserName
    email: EmailAddress
    age: Age
    pan: PAN
    aadhar: Aadhar
    mobile_number: MobileNumber
    country_code: int
    car_id: int
    start_time: StartTime
    end_time: EndTime
    identity: DelegatedIdentityWire

    @property
    def window(self) -> BookingWindow:
        return BookingWindow(self.start_time, self.end_time)

    def customer(self) -> CustomerRecord:
        return CustomerRecord(
            name=self.name.value,
            email=self.email.value,
            age=self.age.value,
            country_code=str(self.country_code),
            mobile_number=self.mobile_number.value,
            pan=self.pan.value,
            aadhar=self.aadhar.value,
        )

    @classmethod
    def from_payload(cls, body: Mapping[str, Any], now: Optional[int] = None) -> CreateTransactionRequest:
        """Validate an inbound body, failing on the first invalid field."""
        name = UserName(_require(body, "name", str))
        email = EmailAddress(_require(body, "email_address", str))
        pan = PAN(_require(body, "pan", str))
        age = Age(_require(body, "age", int))
        aadhar = Aadhar(str(_require(body, "aadhar", (str, int))))
        mobile_number = MobileNumber(str(_require(body, "mobile_number", (str, int))))
        country_code = _require(body, "country_code", int)
        car_id = _require(body, "car_id", int)
        raw_start = _require(body, "start_time", int)
        start_time = StartTime(raw_start, now=now)
        end_time = EndTime.validate(_require(body, "end_time", int), start_time)

        raw_identity = body.get("delegated_identity")
        if isinstance(raw_identity, str):
            identity = DelegatedIdentityWire.from_json(raw_identity)
        elif isinstance(raw_identity, Mapping):
            identity = DelegatedIdentityWire.from_dict(raw_identity)
        else:
            raise InvalidFieldError("delegated_identity", "missing or not an object")

        return cls(
            name=name,
            email=email,
            age=age,
            pan=pan,
            aadhar=aadhar,
            mobile_number=mobile_number,
            country_code=country_code,
            car_id=car_id,
            start_time=start_time,
            end_time=end_time,
            identity=identity,
        )

    def to_payload(self) -> dict:
        return {
            "name": self.name.value,
            "email_address": self.email.value,
            "pan": self.pan.value,
            "age": self.age.value,
            "aadhar": self.aadhar.value,
            "mobile_number": self.mobile_number.value,
            "country_code": self.country_code,
            "car_id": self.car_id,
            "start_time": self.start_time.value,
            "end_time": self.end_time.value,
            "delegated_identity": self.identity.to_dict(),
        }


@dataclass(frozen=True)
class Transaction:
    """A booking the ledger has committed."""

    booking_id: int
    car_id: int
    name: UserName
    email: EmailAddress
    age: Age
    country_code: int
    mobile_number: MobileNumber
    pan: PAN
    aadhar: Aadhar
    start_time: int
    end_time: int

    @classmethod
    def from_ledger_record(cls, record: LedgerRecord) -> Transaction:
        """Decode a committed ledger record, re-validating every customer field."""
        if record.customer is None:
            raise MalformedLedgerRecordError(
                f"Ledger record for booking {record.booking_id} has no customer"
            )
        customer = record.customer
        try:
            country_code = int(customer.country_code)
        except ValueError as e:
            raise MalformedLedgerRecordError(
                f"Could not parse country code {customer.country_code!r}"
            ) from e
        try:
            end = EndTime.validate(record.end_timestamp, record.start_timestamp)
            return cls(
                booking_id=record.booking_id,
                car_id=record.car_id,
                name=UserName(customer.name),
                email=EmailAddress(customer.email),
                age=Age(customer.age),
                country_code=country_code,
                mobile_number=MobileNumber(customer.mobile_number),
                pan=PAN(customer.pan),
                aadhar=Aadhar(customer.aadhar),
                start_time=record.start_timestamp,
                end_time=end.value,
            )
        except ValidationError as e:
            raise MalformedLedgerRecordError(
                f"Ledger record for booking {record.booking_id} failed validation: {e}"
            ) from e

    def to_dict(self) -> dict:
        return {
            "booking_id": self.booking_id,
            "car_id": self.car_id,
            "name": self.name.value,
            "email": self.email.value,
            "age": self.age.value,
            "country_code": self.country_code,
            "mobile_number": self.mobile_number.value,
            "pan": self.pan.value,
            "aadhar": self.aadhar.value,
            "start_time": self.start_time,
            "end_time": self.end_time,
        }


def _require(body: Mapping[str, Any], key: str, expected: type | tuple[type, ...]) -> Any:
    if key not in body or body[key] is None:
        raise InvalidFieldError(key, "field is required")
    value = body[key]
    if isinstance(value, bool) or not isinstance(value, expected):
        raise InvalidFieldError(key, f"unexpected type {type(value).__name__}")
    return value
