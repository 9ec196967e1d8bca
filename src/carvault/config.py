"""
Service configuration from environment variables, and wiring of the adapters.

Secrets (admin key, gateway secret, OAuth tokens) are read from the
environment only and are never echoed back in reprs or errors.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from .delegation import RootIdentity
from .email_notifier import DEFAULT_BOOKINGS_CC, EmailCredentials, GmailNotifier
from .errors import ConfigError, MalformedKeyError
from .ledger_client import DEV_LEDGER_URL, LIVE_LEDGER_URL, HttpLedgerTransport
from .metrics import PrometheusMetrics
from .payment_client import DEFAULT_CALLBACK_URL, RazorpayPaymentClient
from .service import TransactionService

logger = logging.getLogger(__name__)

BACKEND_ENV = "CARVAULT_BACKEND"
LEDGER_URL_ENV = "CARVAULT_LEDGER_URL"
LEDGER_CANISTER_ID_ENV = "CARVAULT_LEDGER_CANISTER_ID"
ADMIN_PRIVATE_KEY_ENV = "CARVAULT_ADMIN_PRIVATE_KEY"
RAZORPAY_KEY_ID_ENV = "RAZORPAY_KEY_ID"
RAZORPAY_KEY_SECRET_ENV = "RAZORPAY_KEY_SECRET"
PAYMENT_CALLBACK_URL_ENV = "CARVAULT_PAYMENT_CALLBACK_URL"
EMAIL_CLIENT_ID_ENV = "EMAIL_CLIENT_ID"
EMAIL_CLIENT_SECRET_ENV = "EMAIL_CLIENT_SECRET"
EMAIL_ACCESS_TOKEN_ENV = "EMAIL_ACCESS_TOKEN"
EMAIL_REFRESH_TOKEN_ENV = "EMAIL_REFRESH_TOKEN"
REMOTE_TIMEOUT_ENV = "CARVAULT_REMOTE_TIMEOUT"
BOOKINGS_CC_ENV = "CARVAULT_BOOKINGS_CC"

BACKEND_URLS = {"LIVE": LIVE_LEDGER_URL, "DEV": DEV_LEDGER_URL}
DEFAULT_REMOTE_TIMEOUT = 30.0


@dataclass(frozen=True)
class Config:
    backend: str
    ledger_url: str
    ledger_canister_id: str
    admin_private_key: str = field(repr=False)
    razorpay_key_id: str
    razorpay_key_secret: str = field(repr=False)
    email: EmailCredentials
    payment_callback_url: str = DEFAULT_CALLBACK_URL
    bookings_cc: str = DEFAULT_BOOKINGS_CC
    remote_timeout: float = DEFAULT_REMOTE_TIMEOUT

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> Config:
        env = os.environ if environ is None else environ

        backend = env.get(BACKEND_ENV, "LIVE").strip().upper()
        if backend not in BACKEND_URLS:
            raise ConfigError(f"{BACKEND_ENV} must be one of {sorted(BACKEND_URLS)}, got {backend!r}")

        raw_timeout = env.get(REMOTE_TIMEOUT_ENV, str(DEFAULT_REMOTE_TIMEOUT))
        try:
            timeout = float(raw_timeout)
        except ValueError as e:
            raise ConfigError(f"{REMOTE_TIMEOUT_ENV} must be a number, got {raw_timeout!r}") from e
        if timeout <= 0:
            raise ConfigError(f"{REMOTE_TIMEOUT_ENV} must be positive")

        return cls(
            backend=backend,
            ledger_url=env.get(LEDGER_URL_ENV) or BACKEND_URLS[backend],
            ledger_canister_id=_required(env, LEDGER_CANISTER_ID_ENV),
            admin_private_key=_required(env, ADMIN_PRIVATE_KEY_ENV),
            razorpay_key_id=_required(env, RAZORPAY_KEY_ID_ENV),
            razorpay_key_secret=_required(env, RAZORPAY_KEY_SECRET_ENV),
            email=EmailCredentials(
                client_id=_required(env, EMAIL_CLIENT_ID_ENV),
                client_secret=_required(env, EMAIL_CLIENT_SECRET_ENV),
                access_token=_required(env, EMAIL_ACCESS_TOKEN_ENV),
                refresh_token=_required(env, EMAIL_REFRESH_TOKEN_ENV),
            ),
            payment_callback_url=env.get(PAYMENT_CALLBACK_URL_ENV) or DEFAULT_CALLBACK_URL,
            bookings_cc=env.get(BOOKINGS_CC_ENV) or DEFAULT_BOOKINGS_CC,
            remote_timeout=timeout,
        )

    def admin_identity(self) -> RootIdentity:
        try:
            return RootIdentity.from_secret(self.admin_private_key)
        except MalformedKeyError as e:
            raise ConfigError(f"{ADMIN_PRIVATE_KEY_ENV} is not a valid secp256k1 key") from e


def _required(env: Mapping[str, str], key: str) -> str:
    value = env.get(key, "").strip()
    if not value:
        raise ConfigError(f"Missing required environment variable {key}")
    return value


def build_service(config: Config) -> TransactionService:
    """Wire the HTTP adapters for ``config`` into a TransactionService."""
    admin = config.admin_identity()
    service = TransactionService(
        transport=HttpLedgerTransport(
            config.ledger_url,
            config.ledger_canister_id,
            timeout_seconds=config.remote_timeout,
        ),
        admin_identity=admin,
        payments=RazorpayPaymentClient(
            config.razorpay_key_id,
            config.razorpay_key_secret,
            callback_url=config.payment_callback_url,
            timeout_seconds=config.remote_timeout,
        ),
        metrics=PrometheusMetrics(),
        notifier=GmailNotifier(
            config.email,
            cc=config.bookings_cc,
            timeout_seconds=config.remote_timeout,
        ),
    )
    logger.info(
        "Configured %s backend at %s as %s",
        config.backend,
        config.ledger_url,
        admin.principal,
    )
    return service
