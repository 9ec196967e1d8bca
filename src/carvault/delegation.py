"""
Delegation chains from a long-lived identity to ephemeral session keys.

A root identity signs a Delegation naming a fresh session public key and an
expiration. The session key may delegate again, extending the chain. Only
session keys and signed proofs ever leave the process; the root key does not.

Each link is an EIP-712 typed-data signature over
``{pubkey, expiration, targetsHash}``. A receiver verifies the chain by
replaying it front to back: the signer recovered from link *i* must be the
key delegated by link *i-1* (the origin key for link 0), and no link may
have expired.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import time
import zlib
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Mapping, Optional, Protocol, Sequence

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from eth_account import Account
from eth_account.messages import encode_defunct, encode_typed_data
from eth_utils import keccak, to_checksum_address
from jwt.algorithms import ECAlgorithm
from jwt.exceptions import InvalidKeyError

from .errors import (
    DelegationError,
    DelegationExpiredError,
    DelegationSignatureError,
    MalformedKeyError,
)

logger = logging.getLogger(__name__)


DELEGATION_MAX_AGE = timedelta(days=7)
SHORT_LIVED_MAX_AGE = timedelta(days=1)

NANOS_PER_SECOND = 1_000_000_000
MAX_EXPIRATION_NS = 2**64 - 1

DELEGATION_DOMAIN = {"name": "Carvault Delegation", "version": "1"}
DELEGATION_TYPES = {
    "Delegation": [
        {"name": "pubkey", "type": "bytes"},
        {"name": "expiration", "type": "uint64"},
        {"name": "targetsHash", "type": "bytes32"},
    ],
}

_NO_TARGETS_HASH = b"\x00" * 32
_SELF_AUTHENTICATING_SUFFIX = b"\x02"


# ---------------------------------------------------------------------------
# Keys and principals
# ---------------------------------------------------------------------------


def now_ns() -> int:
    return time.time_ns()


def public_key_der(key: ec.EllipticCurvePublicKey) -> bytes:
    return key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def load_public_key(der: bytes) -> ec.EllipticCurvePublicKey:
    """Load a DER SubjectPublicKeyInfo secp256k1 key."""
    key = serialization.load_der_public_key(der)
    if not isinstance(key, ec.EllipticCurvePublicKey) or not isinstance(key.curve, ec.SECP256K1):
        raise ValueError("Public key is not a secp256k1 key")
    return key


def signer_address(der: bytes) -> str:
    """Checksummed address that signatures by this public key recover to."""
    point = load_public_key(der).public_bytes(
        serialization.Encoding.X962,
        serialization.PublicFormat.UncompressedPoint,
    )
    return to_checksum_address(keccak(point[1:])[-20:])


def principal_to_text(raw: bytes) -> str:
    checksum = zlib.crc32(raw).to_bytes(4, "big")
    encoded = base64.b32encode(checksum + raw).decode("ascii").lower().rstrip("=")
    return "-".join(encoded[i:i + 5] for i in range(0, len(encoded), 5))


def principal_from_public_key(der: bytes) -> str:
    """Self-authenticating principal of a DER-encoded public key."""
    return principal_to_text(hashlib.sha224(der).digest() + _SELF_AUTHENTICATING_SUFFIX)


ANONYMOUS_PRINCIPAL = principal_to_text(b"\x04")


def private_key_to_jwk(key: ec.EllipticCurvePrivateKey) -> dict[str, Any]:
    return dict(ECAlgorithm.to_jwk(key, as_dict=True))


def private_key_from_jwk(jwk: Mapping[str, Any] | str) -> ec.EllipticCurvePrivateKey:
    """Decode a secp256k1 private JWK, raising MalformedKeyError on any defect."""
    try:
        payload = jwk if isinstance(jwk, str) else json.dumps(dict(jwk))
        key = ECAlgorithm.from_jwk(payload)
    except (InvalidKeyError, ValueError, TypeError, KeyError, AttributeError) as e:
        raise MalformedKeyError(f"Session key could not be decoded: {e}") from e
    if not isinstance(key, ec.EllipticCurvePrivateKey):
        raise MalformedKeyError("Session key JWK has no private component")
    if not isinstance(key.curve, ec.SECP256K1):
        raise MalformedKeyError(f"Unsupported session key curve: {key.curve.name}")
    return key


def _secret_bytes(key: ec.EllipticCurvePrivateKey) -> bytes:
    return key.private_numbers().private_value.to_bytes(32, "big")


def _duration_ns(max_age: timedelta) -> int:
    return (max_age // timedelta(microseconds=1)) * 1000


# ---------------------------------------------------------------------------
# Delegations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Delegation:
    """A statement that ``pubkey`` may act for its signer until ``expiration``."""

    pubkey: bytes
    expiration: int
    targets: Optional[tuple[str, ...]] = None

    def targets_hash(self) -> bytes:
        if self.targets is None:
            return _NO_TARGETS_HASH
        canonical = "\n".join(sorted(t.strip() for t in self.targets if t.strip()))
        return keccak(text=canonical)

    def to_eip712_message(self) -> dict:
        return {
            "types": DELEGATION_TYPES,
            "primaryType": "Delegation",
            "domain": dict(DELEGATION_DOMAIN),
            "message": {
                "pubkey": self.pubkey,
                "expiration": self.expiration,
                "targetsHash": self.targets_hash(),
            },
        }

    def to_dict(self) -> dict:
        return {
            "pubkey": self.pubkey.hex(),
            "expiration": self.expiration,
            "targets": list(self.targets) if self.targets is not None else None,
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> Delegation:
        targets = d.get("targets")
        return cls(
            pubkey=bytes.fromhex(d["pubkey"]),
            expiration=int(d["expiration"]),
            targets=tuple(str(t) for t in targets) if targets is not None else None,
        )


@dataclass(frozen=True)
class SignedDelegation:
    delegation: Delegation
    signature: bytes

    def recover_signer(self) -> str:
        typed_data = self.delegation.to_eip712_message()
        signable = encode_typed_data(
            typed_data["domain"],
            typed_data["types"],
            typed_data["message"],
        )
        return Account.recover_message(signable, signature=self.signature)

    def to_dict(self) -> dict:
        return {
            "delegation": self.delegation.to_dict(),
            "signature": self.signature.hex(),
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> SignedDelegation:
        return cls(
            delegation=Delegation.from_dict(d["delegation"]),
            signature=bytes.fromhex(d["signature"]),
        )


def _sign_delegation(key: ec.EllipticCurvePrivateKey, delegation: Delegation) -> SignedDelegation:
    typed_data = delegation.to_eip712_message()
    signed = Account.sign_typed_data(
        _secret_bytes(key),
        typed_data["domain"],
        typed_data["types"],
        typed_data["message"],
    )
    return SignedDelegation(delegation=delegation, signature=bytes(signed.signature))


def _sign_message(key: ec.EllipticCurvePrivateKey, message: bytes) -> bytes:
    signed = Account.sign_message(encode_defunct(primitive=message), private_key=_secret_bytes(key))
    return bytes(signed.signature)


def recover_message_signer(message: bytes, signature: bytes) -> str:
    """Address that produced ``signature`` over ``message`` via ``Identity.sign``."""
    return Account.recover_message(encode_defunct(primitive=message), signature=signature)


def effective_expiry(chain: Sequence[SignedDelegation]) -> int:
    """Earliest expiration (ns) across the chain."""
    if not chain:
        raise DelegationError("Delegation chain is empty")
    return min(link.delegation.expiration for link in chain)


# ---------------------------------------------------------------------------
# Identities
# ---------------------------------------------------------------------------


class Identity(Protocol):
    @property
    def public_key(self) -> bytes: ...

    @property
    def principal(self) -> str: ...

    @property
    def delegation_chain(self) -> list[SignedDelegation]: ...

    def sign_delegation(self, delegation: Delegation) -> SignedDelegation: ...

    def sign(self, message: bytes) -> bytes: ...


class RootIdentity:
    """Long-lived secp256k1 identity. Its private key is never serialised by this module."""

    __slots__ = ("_key",)

    def __init__(self, private_key: ec.EllipticCurvePrivateKey):
        if not isinstance(private_key.curve, ec.SECP256K1):
            raise ValueError("Root identity requires a secp256k1 key")
        self._key = private_key

    @classmethod
    def generate(cls) -> RootIdentity:
        return cls(ec.generate_private_key(ec.SECP256K1()))

    @classmethod
    def from_jwk(cls, jwk: Mapping[str, Any] | str) -> RootIdentity:
        return cls(private_key_from_jwk(jwk))

    @classmethod
    def from_hex(cls, secret: str) -> RootIdentity:
        candidate = secret.strip()
        if candidate.lower().startswith("0x"):
            candidate = candidate[2:]
        if len(candidate) != 64:
            raise MalformedKeyError("Private key must be a 32-byte hex string")
        try:
            value = int(candidate, 16)
            return cls(ec.derive_private_key(value, ec.SECP256K1()))
        except ValueError as e:
            raise MalformedKeyError(f"Private key could not be decoded: {e}") from e

    @classmethod
    def from_secret(cls, secret: str) -> RootIdentity:
        """Accept either a JWK document or a hex secret."""
        candidate = secret.strip()
        if candidate.startswith("{"):
            return cls.from_jwk(candidate)
        return cls.from_hex(candidate)

    @property
    def public_key(self) -> bytes:
        return public_key_der(self._key.public_key())

    @property
    def principal(self) -> str:
        return principal_from_public_key(self.public_key)

    @property
    def address(self) -> str:
        return signer_address(self.public_key)

    @property
    def delegation_chain(self) -> list[SignedDelegation]:
        return []

    def sign_delegation(self, delegation: Delegation) -> SignedDelegation:
        return _sign_delegation(self._key, delegation)

    def sign(self, message: bytes) -> bytes:
        return _sign_message(self._key, message)

    def export_jwk(self) -> dict[str, Any]:
        """Export the root key. Callers must store the result as a secret."""
        return private_key_to_jwk(self._key)

    def __repr__(self) -> str:
        return f"RootIdentity(principal={self.principal})"


class AuthenticatedIdentity:
    """A session key acting for an origin key through a verified delegation chain."""

    __slots__ = ("_from_key", "_session_key", "_chain")

    def __init__(
        self,
        from_key: bytes,
        session_key: ec.EllipticCurvePrivateKey,
        chain: Sequence[SignedDelegation],
    ):
        if not chain:
            raise DelegationError("Delegation chain is empty")
        self._from_key = bytes(from_key)
        self._session_key = session_key
        self._chain = tuple(chain)

    @property
    def public_key(self) -> bytes:
        return self._from_key

    @property
    def session_public_key(self) -> bytes:
        return public_key_der(self._session_key.public_key())

    @property
    def principal(self) -> str:
        return principal_from_public_key(self._from_key)

    @property
    def delegation_chain(self) -> list[SignedDelegation]:
        return list(self._chain)

    @property
    def expiry_ns(self) -> int:
        return effective_expiry(self._chain)

    def is_expired(self, now: Optional[int] = None) -> bool:
        return (now_ns() if now is None else now) >= self.expiry_ns

    def sign_delegation(self, delegation: Delegation) -> SignedDelegation:
        return _sign_delegation(self._session_key, delegation)

    def sign(self, message: bytes) -> bytes:
        return _sign_message(self._session_key, message)

    def to_wire(self) -> DelegatedIdentityWire:
        return DelegatedIdentityWire(
            from_key=self._from_key,
            to_secret=private_key_to_jwk(self._session_key),
            delegation_chain=self._chain,
        )

    def __repr__(self) -> str:
        return f"AuthenticatedIdentity(principal={self.principal}, links={len(self._chain)})"


@dataclass(frozen=True, repr=False)
class DelegatedIdentityWire:
    """Serializable delegated identity.

    ``to_secret`` is the session private key as a JWK. It is a bearer
    credential for the chain's validity window: never log it.
    """

    from_key: bytes
    to_secret: dict[str, Any] = field(compare=True)
    delegation_chain: tuple[SignedDelegation, ...] = ()

    @property
    def principal(self) -> str:
        return principal_from_public_key(self.from_key)

    @property
    def expiry_ns(self) -> int:
        return effective_expiry(self.delegation_chain)

    def to_dict(self) -> dict:
        return {
            "from_key": self.from_key.hex(),
            "to_secret": dict(self.to_secret),
            "delegation_chain": [link.to_dict() for link in self.delegation_chain],
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> DelegatedIdentityWire:
        try:
            return cls(
                from_key=bytes.fromhex(d["from_key"]),
                to_secret=dict(d["to_secret"]),
                delegation_chain=tuple(SignedDelegation.from_dict(link) for link in d["delegation_chain"]),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise DelegationError(f"Malformed delegated identity: {e}") from e

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_json(cls, raw: str) -> DelegatedIdentityWire:
        try:
            payload = json.loads(raw)
        except ValueError as e:
            raise DelegationError(f"Malformed delegated identity: {e}") from e
        if not isinstance(payload, dict):
            raise DelegationError("Malformed delegated identity: expected a JSON object")
        return cls.from_dict(payload)

    def __repr__(self) -> str:
        return f"DelegatedIdentityWire(principal={self.principal}, links={len(self.delegation_chain)})"


# ---------------------------------------------------------------------------
# Delegation engine
# ---------------------------------------------------------------------------


def delegate(
    from_identity: Identity,
    max_age: timedelta = DELEGATION_MAX_AGE,
    *,
    targets: Optional[Sequence[str]] = None,
    now_ns: Optional[int] = None,
) -> DelegatedIdentityWire:
    """Delegate ``from_identity``'s authority to a fresh session key."""
    session_key = ec.generate_private_key(ec.SECP256K1())
    issued_at = time.time_ns() if now_ns is None else int(now_ns)
    expiration = issued_at + _duration_ns(max_age)
    if not 0 <= expiration <= MAX_EXPIRATION_NS:
        raise ValueError(f"Delegation expiration out of range: {expiration}")

    delegation = Delegation(
        pubkey=public_key_der(session_key.public_key()),
        expiration=expiration,
        targets=tuple(targets) if targets is not None else None,
    )
    signed = from_identity.sign_delegation(delegation)
    chain = tuple(from_identity.delegation_chain) + (signed,)

    logger.info(
        "Delegated session key for %s (links: %d, expires_ns: %d)",
        from_identity.principal,
        len(chain),
        effective_expiry(chain),
    )
    return DelegatedIdentityWire(
        from_key=from_identity.public_key,
        to_secret=private_key_to_jwk(session_key),
        delegation_chain=chain,
    )


def delegate_short_lived(from_identity: Identity) -> DelegatedIdentityWire:
    return delegate(from_identity, SHORT_LIVED_MAX_AGE)


def _check_chain(from_key: bytes, chain: Sequence[SignedDelegation], now: int) -> None:
    if not chain:
        raise DelegationError("Delegation chain is empty")
    try:
        expected = signer_address(from_key)
    except ValueError as e:
        raise DelegationSignatureError(f"Invalid origin public key: {e}") from e

    for index, link in enumerate(chain):
        try:
            recovered = link.recover_signer()
        except Exception as e:
            raise DelegationSignatureError(f"Link {index}: signature verification failed: {e}") from e
        if recovered.lower() != expected.lower():
            raise DelegationSignatureError(
                f"Link {index}: signer mismatch: expected {expected}, got {recovered}"
            )
        if link.delegation.expiration <= now:
            raise DelegationExpiredError(
                f"Link {index}: delegation expired at {link.delegation.expiration}",
                expired_at=link.delegation.expiration,
            )
        try:
            expected = signer_address(link.delegation.pubkey)
        except ValueError as e:
            raise DelegationSignatureError(f"Link {index}: invalid delegated public key: {e}") from e


def verify_delegation_chain(
    from_key: bytes,
    chain: Sequence[SignedDelegation],
    now_ns: Optional[int] = None,
) -> tuple[bool, str]:
    """Verify every link's signature and expiration."""
    try:
        _check_chain(from_key, chain, time.time_ns() if now_ns is None else int(now_ns))
    except DelegationError as e:
        return False, str(e)
    return True, "Valid delegation chain"


def reconstruct(
    wire: DelegatedIdentityWire,
    *,
    now_ns: Optional[int] = None,
) -> AuthenticatedIdentity:
    """Rebuild the signing identity carried by ``wire``.

    Raises MalformedKeyError if the session key cannot be decoded, and
    DelegationSignatureError or DelegationExpiredError if the chain cannot
    be trusted.
    """
    session_key = private_key_from_jwk(wire.to_secret)
    if not wire.delegation_chain:
        raise DelegationError("Delegation chain is empty")
    if wire.delegation_chain[-1].delegation.pubkey != public_key_der(session_key.public_key()):
        raise DelegationSignatureError("Session key does not match the final delegation")
    _check_chain(
        wire.from_key,
        wire.delegation_chain,
        time.time_ns() if now_ns is None else int(now_ns),
    )
    return AuthenticatedIdentity(wire.from_key, session_key, wire.delegation_chain)
