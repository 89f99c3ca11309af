from __future__ import annotations
"""
Custody record model.

A record is created once on deposit, read many times, and transitions exactly
once from ACTIVE to one of the terminal states. Records are immutable values:
a transition stores a new instance under the same id.
"""


from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Any, Dict

from .context import to_bytes, to_hex


Address = bytes
Amount = int
Timestamp = int
RecordId = int

COMMITMENT_LEN = 32


def zero_address(length: int = 32) -> Address:
    return b"\x00" * length


def is_zero(addr: bytes) -> bool:
    return len(addr) == 0 or not any(addr)


class RecordStatus(str, Enum):
    ACTIVE = "active"
    CLAIMED = "claimed"
    REFUNDED = "refunded"

    @property
    def terminal(self) -> bool:
        return self is not RecordStatus.ACTIVE


@dataclass(frozen=True)
class CustodyRecord:
    record_id: RecordId
    sender: Address
    token: Address
    amount_expected: Amount
    amount_received: Amount
    recipient: Address
    created_at: Timestamp
    deadline: Timestamp
    secret_hash: bytes
    claimed: bool = False
    refunded: bool = False

    @property
    def status(self) -> RecordStatus:
        if self.claimed:
            return RecordStatus.CLAIMED
        if self.refunded:
            return RecordStatus.REFUNDED
        return RecordStatus.ACTIVE

    @property
    def is_terminal(self) -> bool:
        return self.claimed or self.refunded

    def mark_claimed(self) -> "CustodyRecord":
        return replace(self, claimed=True)

    def mark_refunded(self) -> "CustodyRecord":
        return replace(self, refunded=True)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        for k in ("sender", "token", "recipient", "secret_hash"):
            d[k] = to_hex(d[k])
        d["status"] = self.status.value
        return d

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "CustodyRecord":
        rec = CustodyRecord(
            record_id=int(d["record_id"]),
            sender=to_bytes(d["sender"]),
            token=to_bytes(d["token"]),
            amount_expected=int(d["amount_expected"]),
            amount_received=int(d["amount_received"]),
            recipient=to_bytes(d["recipient"]),
            created_at=int(d["created_at"]),
            deadline=int(d["deadline"]),
            secret_hash=to_bytes(d["secret_hash"]),
            claimed=bool(d.get("claimed", False)),
            refunded=bool(d.get("refunded", False)),
        )
        if rec.claimed and rec.refunded:
            raise ValueError(f"record {rec.record_id} is both claimed and refunded")
        return rec


__all__ = [
    "Address",
    "Amount",
    "Timestamp",
    "RecordId",
    "COMMITMENT_LEN",
    "zero_address",
    "is_zero",
    "RecordStatus",
    "CustodyRecord",
]
