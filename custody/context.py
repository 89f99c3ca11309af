"""
custody.context: per-call environment passed to ledger operations

Every state-changing ledger operation receives a `CallContext` carrying the
authenticated caller identity and the consensus timestamp at which the call is
evaluated. Nothing in the ledger reads a wall clock or an ambient "current
user"; deadlines and authorization are evaluated purely against this value.

Design notes
------------
- Identities are raw bytes. Hex strings (with or without "0x") are accepted by
  `to_bytes` and normalized.
- `timestamp` must be a non-negative int; `bool` is rejected even though it is
  an int subclass.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Union


# ----------------------------- helpers ----------------------------- #

class ContextError(ValueError):
    """Validation or coercion failure for CallContext values."""


def _strip_0x(s: str) -> str:
    return s[2:] if s.startswith(("0x", "0X")) else s


def to_bytes(value: Union[bytes, bytearray, memoryview, str]) -> bytes:
    """Identity or digest as immutable bytes; str input is hex, 0x optional."""
    if isinstance(value, str):
        digits = _strip_0x(value.strip())
        if len(digits) & 1:
            raise ContextError(f"odd-length hex identity ({len(digits)} digits): {value!r}")
        try:
            return bytes.fromhex(digits)
        except ValueError as e:
            raise ContextError(f"not a hex identity: {value!r}") from e
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise ContextError(f"expected bytes or hex str, got {type(value).__name__}")
    return bytes(value)


def to_hex(b: Union[bytes, bytearray, memoryview]) -> str:
    """Encode bytes as 0x-prefixed lowercase hex."""
    return "0x" + bytes(b).hex()


def require_non_negative_int(name: str, v: Any) -> int:
    if isinstance(v, bool) or not isinstance(v, int):
        raise ContextError(f"{name} must be int, got {type(v).__name__}")
    if v < 0:
        raise ContextError(f"{name} must be non-negative, got {v}")
    return v


# ----------------------------- model ------------------------------- #

@dataclass(frozen=True)
class CallContext:
    """
    Deterministic per-call environment.

    Fields
    ------
    caller:     Authenticated identity invoking the operation (bytes).
    timestamp:  Consensus timestamp the operation is evaluated at (seconds).
    """
    caller: bytes
    timestamp: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "caller", to_bytes(self.caller))
        object.__setattr__(self, "timestamp", require_non_negative_int("timestamp", self.timestamp))

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CallContext":
        return cls(
            caller=to_bytes(d.get("caller", b"")),
            timestamp=require_non_negative_int("timestamp", d.get("timestamp")),
        )

    def at(self, timestamp: int) -> "CallContext":
        """Same caller, different evaluation time."""
        return CallContext(caller=self.caller, timestamp=timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {"caller": to_hex(self.caller), "timestamp": self.timestamp}


__all__ = [
    "ContextError",
    "to_bytes",
    "to_hex",
    "require_non_negative_int",
    "CallContext",
]
