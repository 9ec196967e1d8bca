"""
Booking confirmation email through the Gmail API.

Delivery is best effort: a failed send refreshes the OAuth access token
once and retries. Nothing raised here reaches the booking flow.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx

from .models import Transaction

logger = logging.getLogger(__name__)

GMAIL_SEND_URL = "https://www.googleapis.com/gmail/v1/users/me/messages/send"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
DEFAULT_BOOKINGS_CC = "bookings@fueldao.io"

CONFIRMATION_SUBJECT = "Booking Confirmed with FuelDao"

IST = timezone(timedelta(hours=5, minutes=30), "IST")


@dataclass
class EmailCredentials:
    client_id: str
    client_secret: str
    access_token: str
    refresh_token: str

    def __repr__(self) -> str:
        return f"EmailCredentials(client_id={self.client_id})"


def format_ist(epoch_seconds: int) -> str:
    return datetime.fromtimestamp(epoch_seconds, tz=IST).strftime("%d-%m-%Y %H:%M")


def confirmation_body(transaction: Transaction) -> str:
    booking_ref = f"{transaction.car_id}-{transaction.booking_id}"
    return (
        f"Hey {transaction.name.value},\n\n"
        f"Thank you for choosing FuelDAO! This is a confirmation email of your booking ID "
        f"{booking_ref} with us from {format_ist(transaction.start_time)} IST to "
        f"{format_ist(transaction.end_time)} IST.\n\n"
        "Watch this space for more details regarding your vehicle details and other "
        "information to make it a smooth experience.\n\n"
        "Regards\nTeam FuelDao"
    )


def encode_message(to: str, cc: str, subject: str, body: str) -> str:
    raw = f"To: {to}\r\nCc: {cc}\r\nSubject: {subject}\r\n\r\n{body}"
    return base64.urlsafe_b64encode(raw.encode()).decode("ascii")


class GmailNotifier:
    """NotifierPort sending one confirmation email per committed booking."""

    def __init__(
        self,
        credentials: EmailCredentials,
        cc: str = DEFAULT_BOOKINGS_CC,
        timeout_seconds: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.cc = cc
        self._credentials = credentials
        self._lock = asyncio.Lock()
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def notify(self, transaction: Transaction) -> None:
        try:
            await self._send(transaction)
            return
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Confirmation email for booking %d failed: %s", transaction.booking_id, e)

        try:
            await self._refresh_access_token()
            await self._send(transaction)
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.warning(
                "Confirmation email for booking %d failed after token refresh: %s",
                transaction.booking_id,
                e,
            )

    async def _send(self, transaction: Transaction) -> None:
        async with self._lock:
            access_token = self._credentials.access_token

        payload = {
            "raw": encode_message(
                transaction.email.value,
                self.cc,
                CONFIRMATION_SUBJECT,
                confirmation_body(transaction),
            )
        }
        response = await self._client.post(
            GMAIL_SEND_URL,
            json=payload,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        response.raise_for_status()
        logger.info("Sent confirmation email for booking %d", transaction.booking_id)

    async def _refresh_access_token(self) -> None:
        async with self._lock:
            form = {
                "client_id": self._credentials.client_id,
                "client_secret": self._credentials.client_secret,
                "refresh_token": self._credentials.refresh_token,
                "grant_type": "refresh_token",
            }

        response = await self._client.post(GOOGLE_TOKEN_URL, data=form)
        response.raise_for_status()
        token = response.json()["access_token"]

        async with self._lock:
            self._credentials.access_token = token
        logger.info("Refreshed email access token")

    async def aclose(self) -> None:
        await self._client.aclose()
