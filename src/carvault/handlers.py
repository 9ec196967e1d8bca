"""
Framework-neutral inbound handlers.

Each handler takes already-parsed input, runs one service operation and
returns an ApiResponse. Routing and serving are left to the host framework.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

from .errors import CarvaultError, InvalidFieldError, UnknownError
from .models import CreateTransactionRequest, PaymentProof
from .service import TransactionService

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal Server Error"
PAID_STATUS = "paid"


@dataclass(frozen=True)
class ApiResponse:
    status_code: int
    data: Any

    def to_dict(self) -> dict:
        return {"status_code": self.status_code, "data": self.data}


class CallbackVerifier(Protocol):
    def verify_callback(self, proof: PaymentProof) -> bool: ...


def error_response(error: Exception) -> ApiResponse:
    """Map an exception to a response, hiding internals of unclassified failures."""
    if isinstance(error, CarvaultError) and not isinstance(error, UnknownError):
        return ApiResponse(error.status_code, {"message": str(error)})
    if isinstance(error, UnknownError):
        logger.error("Request failed: %s", error, exc_info=error)
    else:
        logger.exception("Unhandled error", exc_info=error)
    return ApiResponse(500, {"message": INTERNAL_ERROR_MESSAGE})


async def handle_create_payment_link(
    service: TransactionService,
    body: Mapping[str, Any],
) -> ApiResponse:
    try:
        request = CreateTransactionRequest.from_payload(body)
        url = await service.create_payment_link(request)
    except Exception as e:
        return error_response(e)
    return ApiResponse(200, {"payment_link": url})


async def handle_payment_confirmation(
    service: TransactionService,
    booking_id: int,
    params: Mapping[str, Any],
    *,
    verifier: CallbackVerifier,
) -> ApiResponse:
    """Commit a booking from the gateway's redirect parameters once its signature checks out."""
    try:
        proof = PaymentProof.from_callback(params)
        if proof.reference_id != str(booking_id):
            raise InvalidFieldError(
                "razorpay_payment_link_reference_id",
                f"does not match booking {booking_id}",
            )
        if proof.status != PAID_STATUS:
            raise InvalidFieldError("razorpay_payment_link_status", f"payment is {proof.status}")
        if not verifier.verify_callback(proof):
            raise InvalidFieldError("razorpay_signature", "signature mismatch")
        transaction = await service.commit_transaction(booking_id, proof)
    except Exception as e:
        return error_response(e)
    return ApiResponse(201, transaction.to_dict())


def handle_get_principal(service: TransactionService) -> ApiResponse:
    return ApiResponse(200, {"principal": service.get_principal()})
