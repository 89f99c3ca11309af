from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Mapping, Sequence

log = logging.getLogger(__name__)

# Notification size limits.
MAX_EVENT_NAME_BYTES = 64
MAX_KEY_LEN = 64
MAX_BYTES_LEN = 4096
MAX_INT_BITS = 256

# Arg keys are identifiers (they become receipt field names).
_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

EV_DEPOSITED = b"Deposited"
EV_CLAIMED = b"Claimed"
EV_REFUNDED = b"Refunded"
EV_FEE_CHANGED = b"FeeChanged"
EV_ADMIN_TRANSFERRED = b"AdministrationTransferred"

ArgValue = Any  # constrained at runtime
Observer = Callable[["Event"], None]


class EventError(ValueError):
    """Malformed notification (bad name, key or value)."""


@dataclass(frozen=True)
class Event:
    """A committed notification."""

    name: bytes
    args: Dict[str, ArgValue]

    def to_canonical(self) -> Dict[str, Any]:
        """
        Receipt form: name as 0x-hex, args as {"k", "t", "v"} with
        t="b" (bytes, 0x-hex), t="i" (int) or t="z" (bool).
        """
        enc: List[Dict[str, Any]] = []
        for k, v in self.args.items():
            if isinstance(v, (bytes, bytearray)):
                enc.append({"k": k, "t": "b", "v": "0x" + bytes(v).hex()})
            elif isinstance(v, bool):
                enc.append({"k": k, "t": "z", "v": v})
            else:
                enc.append({"k": k, "t": "i", "v": int(v)})
        return {"name": "0x" + self.name.hex(), "args": enc}


def _check_name(name: Any) -> bytes:
    if not isinstance(name, (bytes, bytearray)):
        raise EventError("event name must be bytes")
    b = bytes(name)
    if len(b) == 0:
        raise EventError("event name must be non-empty")
    if len(b) > MAX_EVENT_NAME_BYTES:
        raise EventError(f"event name too long ({len(b)} bytes)")
    return b


def _check_key(key: Any) -> str:
    if not isinstance(key, str) or not key:
        raise EventError("event key must be a non-empty str")
    if len(key) > MAX_KEY_LEN:
        raise EventError(f"event key too long ({len(key)})")
    if not _KEY_RE.match(key):
        raise EventError(f"event key has invalid characters: {key!r}")
    return key


def _check_value(value: Any) -> ArgValue:
    if isinstance(value, (bytes, bytearray)):
        b = bytes(value)
        if len(b) > MAX_BYTES_LEN:
            raise EventError(f"event bytes arg too long ({len(b)})")
        return b
    if isinstance(value, bool):
        # bool is a subclass of int, so check it before int.
        return value
    if isinstance(value, int):
        if value.bit_length() > MAX_INT_BITS:
            raise EventError(f"event int arg out of range ({value.bit_length()} bits)")
        return int(value)
    raise EventError(f"unsupported event arg type {type(value).__name__}")


class EventSink:
    """
    Ordered notification log owned by one ledger.

    Emission is two-phase: `emit` appends to a pending buffer, `commit` moves
    pending events to the committed log and hands them to observers, and
    `rollback` discards them. A failed operation therefore never notifies
    anybody.
    """

    def __init__(self) -> None:
        self._committed: List[Event] = []
        self._pending: List[Event] = []
        self._observers: List[Observer] = []

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """
        Register `observer`; returns a callable that unsubscribes it.

        A ledger delivers events after its operation has released the guard,
        so an observer may call back into the ledger.
        """
        self._observers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    def emit(self, name: bytes, args: Mapping[str, Any]) -> Event:
        bname = _check_name(name)
        if not isinstance(args, Mapping):
            raise EventError("event args must be a mapping")
        checked = {_check_key(k): _check_value(v) for k, v in args.items()}
        ev = Event(bname, checked)
        self._pending.append(ev)
        return ev

    def checkpoint(self) -> int:
        return len(self._pending)

    def rollback(self, mark: int = 0) -> None:
        del self._pending[mark:]

    def commit(self, notify: bool = True) -> List[Event]:
        """Move pending events to the log; with notify=False the caller delivers them via `notify`."""
        batch, self._pending = self._pending, []
        self._committed.extend(batch)
        if notify:
            self.notify(batch)
        return batch

    def notify(self, batch: Sequence[Event]) -> None:
        for ev in batch:
            for obs in list(self._observers):
                try:
                    obs(ev)
                except Exception:
                    # Observers cannot undo a committed operation.
                    log.exception("event observer failed for %s", ev.name.decode("ascii", "replace"))

    def events(self, name: bytes | None = None) -> List[Event]:
        if name is None:
            return list(self._committed)
        return [e for e in self._committed if e.name == name]

    def pending(self) -> Sequence[Event]:
        return tuple(self._pending)

    def canonical(self) -> List[Dict[str, Any]]:
        return [e.to_canonical() for e in self._committed]

    def clear(self) -> None:
        self._committed.clear()
        self._pending.clear()

    def __iter__(self) -> Iterator[Event]:
        return iter(tuple(self._committed))

    def __len__(self) -> int:
        return len(self._committed)


__all__ = [
    "Event",
    "EventSink",
    "EventError",
    "Observer",
    "EV_DEPOSITED",
    "EV_CLAIMED",
    "EV_REFUNDED",
    "EV_FEE_CHANGED",
    "EV_ADMIN_TRANSFERRED",
    "MAX_EVENT_NAME_BYTES",
    "MAX_KEY_LEN",
    "MAX_BYTES_LEN",
    "MAX_INT_BITS",
]
