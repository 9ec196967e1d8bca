"""
Carvault error types.

Specific exceptions for each failure category, so callers can decide
whether to reject, retry, or alert. Every category carries the HTTP-style
status code the inbound handlers surface to the caller.
"""


class CarvaultError(Exception):
    """Base error for all Carvault operations."""
    status_code = 500


# Validation errors
class ValidationError(CarvaultError):
    """Base error for a malformed inbound field."""
    status_code = 422
    field_name = "request"


class UserNameEmptyError(ValidationError):
    field_name = "name"

    def __init__(self):
        super().__init__("User name cannot be empty")


class EmailAddressError(ValidationError):
    field_name = "email"

    def __init__(self, invalid_email: str):
        self.invalid_email = invalid_email
        super().__init__(f"{invalid_email} is not a valid email address")


class AgeError(ValidationError):
    field_name = "age"

    def __init__(self, invalid_age):
        self.invalid_age = invalid_age
        super().__init__(f"{invalid_age} is not a valid age for a driver")


class MobileNumberError(ValidationError):
    field_name = "mobile_number"

    def __init__(self, invalid_mobile_number: str):
        self.invalid_mobile_number = invalid_mobile_number
        super().__init__(f"{invalid_mobile_number} is not a valid mobile number")


class PANError(ValidationError):
    field_name = "pan"

    def __init__(self, invalid_pan: str):
        self.invalid_pan = invalid_pan
        super().__init__(f"{invalid_pan} is not a valid PAN")


class AadharError(ValidationError):
    field_name = "aadhar"

    def __init__(self, invalid_aadhar: str):
        self.invalid_aadhar = invalid_aadhar
        super().__init__(f"{invalid_aadhar} is not a valid Aadhar")


class StartTimeError(ValidationError):
    field_name = "start_time"

    def __init__(self, start_time: int, now: int):
        self.start_time = start_time
        self.now = now
        super().__init__(
            f"Invalid start time: {start_time}, it must be greater than the current time {now}"
        )


class EndTimeError(ValidationError):
    field_name = "end_time"

    def __init__(self, end_time: int, start_time: int):
        self.end_time = end_time
        self.start_time = start_time
        super().__init__(
            f"Invalid end time: {end_time}, it must be greater than start time {start_time}"
        )


class InvalidFieldError(ValidationError):
    """A required field is missing or has the wrong type."""

    def __init__(self, field_name: str, reason: str):
        self.field_name = field_name
        super().__init__(f"Invalid {field_name}: {reason}")


# Delegation errors
class DelegationError(CarvaultError):
    """Base error for malformed, tampered or expired identity material."""
    status_code = 401


class MalformedKeyError(DelegationError):
    """Embedded session key could not be decoded."""
    pass


class DelegationSignatureError(DelegationError):
    """A delegation link's signature does not match its expected signer."""
    pass


class DelegationExpiredError(DelegationError):
    """The delegation chain's effective expiry has passed."""

    def __init__(self, message: str, expired_at: int = 0):
        self.expired_at = expired_at
        super().__init__(message)


# Remote errors
class RemoteError(CarvaultError):
    """Base error for failures reported by, or while reaching, a remote service."""
    pass


class LedgerRejectedError(RemoteError):
    """The ledger refused the call (car unavailable, overlapping window, duplicate)."""
    status_code = 409

    def __init__(self, message: str):
        self.ledger_message = message
        super().__init__(f"Ledger response: {message}")


class CommunicationError(RemoteError):
    """Transport-level failure. Safe to retry; nothing was committed."""
    status_code = 502


class LedgerCommunicationError(CommunicationError):
    """Failed to communicate with the ledger."""
    pass


class PaymentLinkError(CommunicationError):
    """The payment gateway did not issue a payment link."""
    pass


# Unknown errors
class UnknownError(CarvaultError):
    """Unclassified failure."""
    status_code = 500


class MalformedLedgerRecordError(UnknownError):
    """The ledger returned a record that fails domain validation."""
    pass


class ConfigError(CarvaultError):
    """Required configuration is missing or invalid."""
    pass
