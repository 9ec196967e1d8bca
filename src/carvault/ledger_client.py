"""
HTTP transport to the booking ledger canister.

Each call is a JSON envelope signed by the identity's current signing key:

    {"content": {"method", "args", "sender", "ingress_expiry"},
     "sender_pubkey": <hex DER origin key>,
     "sender_delegation": [<signed delegation>, ...],
     "sender_sig": <hex signature over the request id>}

The request id is sha256 over the canonical JSON of ``content``.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from typing import Any, Optional

import httpx

from .delegation import NANOS_PER_SECOND, Identity
from .errors import LedgerCommunicationError

logger = logging.getLogger(__name__)

LIVE_LEDGER_URL = "https://ic0.app"
DEV_LEDGER_URL = "http://localhost:4943"

INGRESS_EXPIRY_SECONDS = 5 * 60


def request_id(content: dict[str, Any]) -> bytes:
    canonical = json.dumps(content, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode()).digest()


def build_envelope(
    method: str,
    args: dict[str, Any],
    identity: Identity,
    now_ns: Optional[int] = None,
) -> dict[str, Any]:
    current = time.time_ns() if now_ns is None else now_ns
    content = {
        "method": method,
        "args": args,
        "sender": identity.principal,
        "ingress_expiry": current + INGRESS_EXPIRY_SECONDS * NANOS_PER_SECOND,
    }
    return {
        "content": content,
        "sender_pubkey": identity.public_key.hex(),
        "sender_delegation": [link.to_dict() for link in identity.delegation_chain],
        "sender_sig": identity.sign(request_id(content)).hex(),
    }


class HttpLedgerTransport:
    """LedgerTransport over HTTP. One AsyncClient per transport, shared by all calls."""

    def __init__(
        self,
        base_url: str,
        canister_id: str,
        timeout_seconds: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not canister_id:
            raise ValueError("Ledger canister id is required")
        self.base_url = base_url.rstrip("/")
        self.canister_id = canister_id
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    def _url(self, method: str) -> str:
        return f"{self.base_url}/canisters/{self.canister_id}/{method}"

    async def call(
        self,
        method: str,
        args: dict[str, Any],
        *,
        identity: Identity,
        idempotency_key: Optional[str] = None,
    ) -> dict[str, Any]:
        envelope = build_envelope(method, args, identity)
        headers = {"Content-Type": "application/json"}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        try:
            response = await self._client.post(self._url(method), json=envelope, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise LedgerCommunicationError(
                f"Ledger {method} returned HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise LedgerCommunicationError(f"Failed to reach ledger for {method}: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise LedgerCommunicationError(f"Ledger {method} reply is not JSON") from e
        if not isinstance(body, dict):
            raise LedgerCommunicationError(f"Ledger {method} reply is not an object")

        logger.debug("Ledger %s answered for %s", method, identity.principal)
        return body

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpLedgerTransport:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
