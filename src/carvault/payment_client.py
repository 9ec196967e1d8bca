"""Razorpay payment-link adapter."""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Optional

import httpx

from .errors import PaymentLinkError
from .models import PaymentProof
from .money import rupees_to_paise

logger = logging.getLogger(__name__)

RAZORPAY_API_URL = "https://api.razorpay.com"
PAYMENT_LINKS_PATH = "/v1/payment_links"
DEFAULT_CALLBACK_URL = "https://fuelev.in/payment"


class RazorpayPaymentClient:
    """PaymentPort backed by Razorpay payment links."""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        callback_url: str = DEFAULT_CALLBACK_URL,
        base_url: str = RAZORPAY_API_URL,
        timeout_seconds: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not key_id:
            raise ValueError("Razorpay key id is required")
        if not key_secret:
            raise ValueError("Razorpay key secret is required")
        self.callback_url = callback_url
        self.base_url = base_url.rstrip("/")
        self._key_id = key_id
        self._key_secret = key_secret
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def create_payment_link(self, amount: float, booking_id: int) -> str:
        payload = {
            "amount": rupees_to_paise(amount),
            "currency": "INR",
            "callback_url": self.callback_url,
            "callback_method": "get",
            "reference_id": str(booking_id),
        }
        try:
            response = await self._client.post(
                f"{self.base_url}{PAYMENT_LINKS_PATH}",
                json=payload,
                auth=(self._key_id, self._key_secret),
            )
        except httpx.HTTPError as e:
            raise PaymentLinkError(f"Failed to reach payment gateway: {e}") from e

        if response.is_error:
            raise PaymentLinkError(f"Payment gateway error {response.status_code}: {response.text}")
        try:
            short_url = response.json().get("short_url")
        except (ValueError, AttributeError) as e:
            raise PaymentLinkError("Payment gateway reply is not a JSON object") from e
        if not isinstance(short_url, str) or not short_url:
            raise PaymentLinkError("short_url not found in the response")

        logger.info("Issued payment link for booking %d (%d paise)", booking_id, payload["amount"])
        return short_url

    def verify_callback(self, proof: PaymentProof) -> bool:
        """Check the gateway's signature on a payment-link redirect."""
        message = "|".join(
            (proof.payment_link_id, proof.reference_id, proof.status, proof.payment_id)
        )
        expected = hmac.new(
            self._key_secret.encode(),
            message.encode(),
            hashlib.sha256,
        ).hexdigest()
        return hmac.compare_digest(expected, proof.signature)

    async def aclose(self) -> None:
        await self._client.aclose()
