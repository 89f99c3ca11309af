"""
custody.commitment: commit/reveal digests binding a secret to its claimant.

Schemes
-------
recipient      keccak256(secret || recipient)
recipient+id   keccak256(secret || recipient || u256_be(record_id))

Binding the recipient means a secret observed in flight cannot authorize a
different claimant. Binding the record id additionally stops one revealed
secret from unlocking a second deposit made to the same recipient with the
same commitment.

All inputs and outputs are bytes; nothing here encodes text implicitly.
"""

from __future__ import annotations

import hmac
from typing import Optional

from Crypto.Hash import keccak

from .config import SCHEME_RECIPIENT, SCHEME_RECIPIENT_ID
from .errors import InvalidSecret, InvalidSecretHash, ValidationError
from .records import COMMITMENT_LEN, is_zero


def keccak256(data: bytes) -> bytes:
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise TypeError(f"data must be bytes-like (got {type(data).__name__})")
    h = keccak.new(digest_bits=256)
    h.update(bytes(data))
    return h.digest()


def _encode_id(record_id: int) -> bytes:
    if isinstance(record_id, bool) or not isinstance(record_id, int) or record_id <= 0:
        raise ValidationError("record id must be a positive int", details={"record_id": repr(record_id)})
    return record_id.to_bytes(32, "big")


def compute_commitment(secret: bytes, recipient: bytes, record_id: Optional[int] = None) -> bytes:
    """
    Digest a depositor publishes as `secret_hash`.

    Pass `record_id` only under the ``recipient+id`` scheme.
    """
    if not isinstance(secret, (bytes, bytearray)) or len(secret) == 0:
        raise ValidationError("secret must be non-empty bytes")
    if not isinstance(recipient, (bytes, bytearray)) or is_zero(bytes(recipient)):
        raise ValidationError("recipient must be a non-zero identity")
    payload = bytes(secret) + bytes(recipient)
    if record_id is not None:
        payload += _encode_id(record_id)
    return keccak256(payload)


def commitment_for_scheme(scheme: str, secret: bytes, recipient: bytes, record_id: int) -> bytes:
    if scheme == SCHEME_RECIPIENT:
        return compute_commitment(secret, recipient)
    if scheme == SCHEME_RECIPIENT_ID:
        return compute_commitment(secret, recipient, record_id)
    raise ValueError(f"unknown commitment scheme {scheme!r}")


def require_commitment(secret_hash: bytes) -> bytes:
    if not isinstance(secret_hash, (bytes, bytearray)) or len(secret_hash) != COMMITMENT_LEN:
        raise InvalidSecretHash(f"secret_hash must be {COMMITMENT_LEN} bytes")
    if is_zero(bytes(secret_hash)):
        raise InvalidSecretHash("secret_hash must be non-zero")
    return bytes(secret_hash)


def verify_commitment(
    scheme: str, secret: bytes, recipient: bytes, record_id: int, secret_hash: bytes
) -> None:
    """Raise InvalidSecret unless `secret` opens `secret_hash` for this record."""
    try:
        digest = commitment_for_scheme(scheme, secret, recipient, record_id)
    except ValidationError as e:
        raise InvalidSecret(record_id=record_id, details={"cause": e.code}) from e
    if not hmac.compare_digest(digest, secret_hash):
        raise InvalidSecret(record_id=record_id)


__all__ = [
    "keccak256",
    "compute_commitment",
    "commitment_for_scheme",
    "require_commitment",
    "verify_commitment",
]
