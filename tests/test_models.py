"""Tests for booking value objects and aggregates."""

import time

import pytest

from carvault.errors import (
    AadharError,
    AgeError,
    DelegationError,
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
from carvault.models import (
    PAN,
    Aadhar,
    Age,
    BookingWindow,
    CreateTransactionRequest,
    EmailAddress,
    EndTime,
    LedgerRecord,
    MobileNumber,
    PaymentProof,
    StartTime,
    Transaction,
    UserName,
)

from conftest import booking_payload, callback_params, customer_dict, ledger_record


NOW = 1_700_000_000


class TestValueObjects:
    def test_user_name_is_trimmed(self):
        assert UserName("  Asha Rao ").value == "Asha Rao"

    @pytest.mark.parametrize("raw", ["", "   ", "\t\n"])
    def test_user_name_rejects_blank(self, raw):
        with pytest.raises(UserNameEmptyError):
            UserName(raw)

    def test_email_accepts_plus_and_subdomain(self):
        assert EmailAddress(" a.b+c@mail.example.co.in ").value == "a.b+c@mail.example.co.in"

    @pytest.mark.parametrize("raw", ["asha", "asha@", "@example.com", "asha@example", "as ha@example.com"])
    def test_email_rejects_malformed(self, raw):
        with pytest.raises(EmailAddressError):
            EmailAddress(raw)

    def test_age_boundary(self):
        assert Age(18).value == 18
        with pytest.raises(AgeError):
            Age(17)

    def test_age_rejects_bool(self):
        with pytest.raises(AgeError):
            Age(True)

    def test_mobile_number_keeps_leading_zero(self):
        assert MobileNumber("0123456789").value == "0123456789"

    @pytest.mark.parametrize("raw", ["12345", "12345678901", "98765abcde"])
    def test_mobile_number_rejects_wrong_shape(self, raw):
        with pytest.raises(MobileNumberError):
            MobileNumber(raw)

    def test_pan_requires_uppercase_pattern(self):
        assert PAN(" ABCDE1234F ").value == "ABCDE1234F"
        with pytest.raises(PANError):
            PAN("abcde1234f")
        with pytest.raises(PANError):
            PAN("ABCD12345F")

    def test_aadhar_is_twelve_digits(self):
        assert Aadhar("123456789012").value == "123456789012"
        with pytest.raises(AadharError):
            Aadhar("12345678901")

    def test_start_time_must_be_in_future(self):
        assert StartTime(NOW + 1, now=NOW).value == NOW + 1
        with pytest.raises(StartTimeError):
            StartTime(NOW, now=NOW)

    @pytest.mark.parametrize("offset", [-1, -3600])
    def test_start_time_checks_clock_by_default(self, offset):
        with pytest.raises(StartTimeError):
            StartTime(int(time.time()) + offset)

    def test_epoch_start_is_rejected(self):
        with pytest.raises(StartTimeError):
            StartTime(0)

    def test_start_time_rejects_non_integers(self):
        with pytest.raises(StartTimeError):
            StartTime(True, now=0)

    def test_end_time_must_follow_start(self):
        start = StartTime(NOW + 10, now=NOW)
        assert EndTime.validate(NOW + 11, start).value == NOW + 11
        with pytest.raises(EndTimeError):
            EndTime.validate(NOW + 10, start)

    def test_booking_window_rejects_inverted_range(self):
        with pytest.raises(EndTimeError):
            BookingWindow(StartTime(NOW + 10, now=NOW), EndTime(NOW + 5))

    def test_errors_are_validation_errors(self):
        with pytest.raises(ValidationError) as exc:
            PAN("bad")
        assert exc.value.status_code == 422
        assert exc.value.field_name == "pan"


class TestCreateTransactionRequest:
    def test_valid_payload(self, wire):
        request = CreateTransactionRequest.from_payload(booking_payload(wire))
        assert request.name.value == "Asha Rao"
        assert request.car_id == 7
        assert request.identity == wire
        assert request.window.end.value - request.window.start.value == 86400

    def test_customer_record_uses_ledger_wire_form(self, wire):
        request = CreateTransactionRequest.from_payload(booking_payload(wire))
        assert request.customer().to_dict() == customer_dict()

    def test_identity_may_arrive_as_json_text(self, wire):
        request = CreateTransactionRequest.from_payload(
            booking_payload(wire, delegated_identity=wire.to_json())
        )
        assert request.identity == wire

    def test_first_invalid_field_wins(self, wire):
        body = booking_payload(wire, email_address="nope", pan="bad", age=12)
        with pytest.raises(EmailAddressError):
            CreateTransactionRequest.from_payload(body)

    def test_pan_checked_before_age(self, wire):
        body = booking_payload(wire, pan="bad", age=12)
        with pytest.raises(PANError):
            CreateTransactionRequest.from_payload(body)

    def test_start_time_checked_against_now(self, wire):
        body = booking_payload(wire, start_time=NOW, end_time=NOW + 10)
        with pytest.raises(StartTimeError):
            CreateTransactionRequest.from_payload(body, now=NOW)

    def test_end_before_start(self, wire):
        body = booking_payload(wire, start_time=NOW + 100, end_time=NOW + 50)
        with pytest.raises(EndTimeError):
            CreateTransactionRequest.from_payload(body, now=NOW)

    def test_missing_field(self, wire):
        body = booking_payload(wire)
        del body["car_id"]
        with pytest.raises(InvalidFieldError) as exc:
            CreateTransactionRequest.from_payload(body)
        assert exc.value.field_name == "car_id"

    def test_wrong_type(self, wire):
        with pytest.raises(InvalidFieldError):
            CreateTransactionRequest.from_payload(booking_payload(wire, age="29"))

    def test_identity_checked_after_fields(self, wire):
        body = booking_payload(wire, delegated_identity=None, name="")
        with pytest.raises(UserNameEmptyError):
            CreateTransactionRequest.from_payload(body)

    def test_missing_identity(self, wire):
        with pytest.raises(InvalidFieldError):
            CreateTransactionRequest.from_payload(booking_payload(wire, delegated_identity=None))

    def test_garbled_identity(self, wire):
        with pytest.raises(DelegationError):
            CreateTransactionRequest.from_payload(booking_payload(wire, delegated_identity="{not json"))

    def test_payload_round_trip(self, wire):
        request = CreateTransactionRequest.from_payload(booking_payload(wire))
        assert CreateTransactionRequest.from_payload(request.to_payload()) == request


class TestLedgerRecords:
    def test_transaction_from_record(self):
        record = LedgerRecord.from_dict(ledger_record(booking_id=5, car_id=9))
        tx = Transaction.from_ledger_record(record)
        assert tx.booking_id == 5
        assert tx.car_id == 9
        assert tx.country_code == 91
        assert tx.email.value == "asha@example.com"

    def test_record_missing_keys(self):
        raw = ledger_record()
        del raw["booking_id"]
        with pytest.raises(MalformedLedgerRecordError):
            LedgerRecord.from_dict(raw)

    def test_record_without_customer(self):
        raw = ledger_record()
        raw["customer"] = None
        with pytest.raises(MalformedLedgerRecordError):
            Transaction.from_ledger_record(LedgerRecord.from_dict(raw))

    def test_record_customer_is_revalidated(self):
        record = LedgerRecord.from_dict(ledger_record(email="not-an-email"))
        with pytest.raises(MalformedLedgerRecordError) as exc:
            Transaction.from_ledger_record(record)
        assert isinstance(exc.value.__cause__, EmailAddressError)

    def test_record_bad_country_code(self):
        record = LedgerRecord.from_dict(ledger_record(country_code="+91x"))
        with pytest.raises(MalformedLedgerRecordError):
            Transaction.from_ledger_record(record)

    def test_record_infinite_booking_id(self):
        with pytest.raises(MalformedLedgerRecordError):
            LedgerRecord.from_dict(ledger_record(booking_id=float("inf")))

    @pytest.mark.parametrize("total", [float("inf"), float("-inf"), float("nan"), "nan"])
    def test_record_non_finite_total(self, total):
        with pytest.raises(MalformedLedgerRecordError):
            LedgerRecord.from_dict(ledger_record(total_amount=total))


class TestPaymentProof:
    def test_from_callback(self):
        proof = PaymentProof.from_callback(callback_params(booking_id=3))
        assert proof.payment_id == "pay_123"
        assert proof.reference_id == "3"
        assert proof.status == "paid"

    def test_missing_parameter(self):
        params = callback_params()
        del params["razorpay_signature"]
        with pytest.raises(InvalidFieldError) as exc:
            PaymentProof.from_callback(params)
        assert exc.value.field_name == "razorpay_signature"
