from __future__ import annotations
# custody/errors.py
"""
Error types for the custody ledger. Every failure is a checked rejection of a
single operation: nothing is retried and no state survives the failed call.

Categories (each concrete error also has a stable ``code``):

- ValidationError     bad token, amount, identity, commitment, deadline, fee
- AuthorizationError  wrong caller, wrong secret, non-admin configuration
- TemporalError       deadline pivot violated
- StateError          terminal record, unknown record
- FeeOverflow         fee multiplication exceeds the word width
- CollaboratorError   value-transfer collaborator misbehaved
- Reentrant           nested entry while an operation is in progress
"""


from typing import Any, Dict, Mapping, Optional
import json


class CustodyError(Exception):
    """Base class for custody ledger errors."""

    code: str = "CUSTODY_ERROR"

    def __init__(self, message: str = "", *, details: Optional[Mapping[str, Any]] = None) -> None:
        self.message = message or self.__class__.__name__
        self.details = dict(details or {})
        super().__init__(self.__str__())

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}

    def __str__(self) -> str:  # pragma: no cover - trivial
        if self.details:
            try:
                packed = json.dumps(self.details, sort_keys=True, separators=(",", ":"), default=_jsonable)
            except Exception:
                packed = str(self.details)
            return f"{self.code}: {self.message} [{packed}]"
        return f"{self.code}: {self.message}"


def _jsonable(v: Any) -> Any:
    if isinstance(v, (bytes, bytearray)):
        return "0x" + bytes(v).hex()
    return str(v)


def _with_record(record_id: Optional[int], details: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    d = dict(details or {})
    if record_id is not None:
        d.setdefault("record_id", int(record_id))
    return d


# --------------------------------------------------------------------------
# Input validation
# --------------------------------------------------------------------------


class ValidationError(CustodyError):
    code = "CUSTODY_VALIDATION"


class InvalidToken(ValidationError):
    code = "CUSTODY_INVALID_TOKEN"


class InvalidAmount(ValidationError):
    code = "CUSTODY_INVALID_AMOUNT"


class ZeroIdentity(ValidationError):
    code = "CUSTODY_ZERO_IDENTITY"


class InvalidSecretHash(ValidationError):
    code = "CUSTODY_INVALID_SECRET_HASH"


class DeadlineTooSoon(ValidationError):
    code = "CUSTODY_DEADLINE_TOO_SOON"

    def __init__(
        self,
        *,
        deadline: int,
        earliest: int,
        message: str = "deadline is inside the minimum lock window",
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        d = dict(details or {})
        d.update({"deadline": int(deadline), "earliest": int(earliest)})
        super().__init__(message, details=d)


class InvalidFeeBps(ValidationError):
    code = "CUSTODY_INVALID_FEE_BPS"


# --------------------------------------------------------------------------
# Authorization
# --------------------------------------------------------------------------


class AuthorizationError(CustodyError):
    code = "CUSTODY_UNAUTHORIZED"


class NotRecipient(AuthorizationError):
    code = "CUSTODY_NOT_RECIPIENT"

    def __init__(self, *, record_id: int, message: str = "caller is not the recipient",
                 details: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message, details=_with_record(record_id, details))


class NotSender(AuthorizationError):
    code = "CUSTODY_NOT_SENDER"

    def __init__(self, *, record_id: int, message: str = "caller is not the sender",
                 details: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message, details=_with_record(record_id, details))


class InvalidSecret(AuthorizationError):
    code = "CUSTODY_INVALID_SECRET"

    def __init__(self, *, record_id: int, message: str = "secret does not match commitment",
                 details: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message, details=_with_record(record_id, details))


class NotAdmin(AuthorizationError):
    code = "CUSTODY_NOT_ADMIN"


# --------------------------------------------------------------------------
# Temporal
# --------------------------------------------------------------------------


class TemporalError(CustodyError):
    code = "CUSTODY_TEMPORAL"

    def __init__(
        self,
        *,
        record_id: int,
        now: int,
        deadline: int,
        message: str = "",
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        d = _with_record(record_id, details)
        d.update({"now": int(now), "deadline": int(deadline)})
        super().__init__(message, details=d)


class DeadlinePassed(TemporalError):
    """Claim attempted after the deadline."""
    code = "CUSTODY_DEADLINE_PASSED"


class NotExpired(TemporalError):
    """Refund attempted at or before the deadline."""
    code = "CUSTODY_NOT_EXPIRED"


# --------------------------------------------------------------------------
# State conflict
# --------------------------------------------------------------------------


class StateError(CustodyError):
    code = "CUSTODY_STATE"


class AlreadyTerminal(StateError):
    code = "CUSTODY_ALREADY_TERMINAL"

    def __init__(self, *, record_id: int, status: str, message: str = "record is terminal",
                 details: Optional[Mapping[str, Any]] = None) -> None:
        d = _with_record(record_id, details)
        d["status"] = status
        super().__init__(message, details=d)


class RecordNotFound(StateError):
    code = "CUSTODY_RECORD_NOT_FOUND"

    def __init__(self, *, record_id: Any, message: str = "no such custody record",
                 details: Optional[Mapping[str, Any]] = None) -> None:
        d = dict(details or {})
        d["record_id"] = record_id
        super().__init__(message, details=d)


# --------------------------------------------------------------------------
# Arithmetic
# --------------------------------------------------------------------------


class FeeOverflow(CustodyError):
    code = "CUSTODY_FEE_OVERFLOW"

    def __init__(self, *, amount: int, fee_bps: int, word_bits: int,
                 message: str = "fee multiplication overflows word width",
                 details: Optional[Mapping[str, Any]] = None) -> None:
        d = dict(details or {})
        d.update({"amount": int(amount), "fee_bps": int(fee_bps), "word_bits": int(word_bits)})
        super().__init__(message, details=d)


# --------------------------------------------------------------------------
# External collaborator
# --------------------------------------------------------------------------


class CollaboratorError(CustodyError):
    code = "CUSTODY_COLLABORATOR"


class TransferFailed(CollaboratorError):
    code = "CUSTODY_TRANSFER_FAILED"

    def __init__(self, *, direction: str, reason: str, message: str = "value transfer failed",
                 details: Optional[Mapping[str, Any]] = None) -> None:
        d = dict(details or {})
        d.update({"direction": direction, "reason": reason})
        super().__init__(message, details=d)


class BalanceInvariantViolation(CollaboratorError):
    code = "CUSTODY_BALANCE_INVARIANT"

    def __init__(self, *, before: int, after: int,
                 message: str = "custody balance decreased during transfer-in",
                 details: Optional[Mapping[str, Any]] = None) -> None:
        d = dict(details or {})
        d.update({"before": int(before), "after": int(after)})
        super().__init__(message, details=d)


class ZeroReceipt(CollaboratorError):
    code = "CUSTODY_ZERO_RECEIPT"


# --------------------------------------------------------------------------
# Concurrency
# --------------------------------------------------------------------------


class Reentrant(CustodyError):
    code = "CUSTODY_REENTRANT"


__all__ = [
    "CustodyError",
    "ValidationError",
    "InvalidToken",
    "InvalidAmount",
    "ZeroIdentity",
    "InvalidSecretHash",
    "DeadlineTooSoon",
    "InvalidFeeBps",
    "AuthorizationError",
    "NotRecipient",
    "NotSender",
    "InvalidSecret",
    "NotAdmin",
    "TemporalError",
    "DeadlinePassed",
    "NotExpired",
    "StateError",
    "AlreadyTerminal",
    "RecordNotFound",
    "FeeOverflow",
    "CollaboratorError",
    "TransferFailed",
    "BalanceInvariantViolation",
    "ZeroReceipt",
    "Reentrant",
]
