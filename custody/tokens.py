"""
custody.tokens: minimal, deterministic fungible assets for local runs and tests.

These are simulation-only ledgers standing in for the external value-transfer
mechanism. Embedders holding real assets provide their own objects with the
same explicit-caller surface:

- balance_of(addr) -> int
- allowance(owner, spender) -> int
- approve(caller, spender, amount)
- transfer(caller, to, amount)
- transfer_from(caller, owner, to, amount)
- snapshot() -> state, restore(state)   (undo support for a failed operation)

Return conventions differ on purpose, because real assets differ:

* `VoidToken`            returns None, raises TokenError on failure
* `BoolToken`            returns True, returns False on failure (never raises)
* `FeeOnTransferToken`   like BoolToken, but burns `transfer_fee_bps` of every
                         movement so the receiver gets less than the nominal amount

Every token can fire an `on_transfer(frm, to, amount)` hook after balances
move. That is how an asset calls back into its caller, and it is exactly the
re-entrancy vector the ledger must survive.

Deterministic: no wall-clock, no randomness, pure arithmetic with explicit caps.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, Optional, Tuple

from .fees import U256_BITS, apply_bps, check_bps
from .records import is_zero

TransferHook = Callable[[bytes, bytes, int], None]


class TokenError(Exception):
    """Rejected token operation; `reason` is a stable tag such as TOKEN:ALLOWANCE_LOW."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class FungibleToken:
    """
    In-memory balances and allowances.

    `_do_transfer` validates everything before mutating anything, so a
    rejected movement leaves no trace.
    """

    def __init__(self, address: bytes, *, symbol: str = "TKN", word_bits: int = U256_BITS) -> None:
        if is_zero(bytes(address)):
            raise ValueError("token address must be non-zero")
        self.address = bytes(address)
        self.symbol = symbol
        self.word_bits = word_bits
        self.on_transfer: Optional[TransferHook] = None
        self._lock = threading.RLock()
        self._balances: Dict[bytes, int] = {}
        self._allowances: Dict[Tuple[bytes, bytes], int] = {}
        self._supply = 0

    # ------------------------------ views ------------------------------ #

    def balance_of(self, addr: bytes) -> int:
        with self._lock:
            return self._balances.get(bytes(addr), 0)

    def allowance(self, owner: bytes, spender: bytes) -> int:
        with self._lock:
            return self._allowances.get((bytes(owner), bytes(spender)), 0)

    def total_supply(self) -> int:
        return self._supply

    # ---------------------------- host hooks --------------------------- #

    def mint(self, to: bytes, amount: int) -> None:
        """Host/testing helper: create `amount` units for `to`."""
        self._check_addr(to)
        self._check_amount(amount)
        with self._lock:
            self._balances[bytes(to)] = self._add_checked(self.balance_of(to), amount)
            self._supply = self._add_checked(self._supply, amount)

    def snapshot(self) -> Any:
        with self._lock:
            return (dict(self._balances), dict(self._allowances), self._supply)

    def restore(self, state: Any) -> None:
        balances, allowances, supply = state
        with self._lock:
            self._balances = dict(balances)
            self._allowances = dict(allowances)
            self._supply = supply

    # ---------------------------- mutations ---------------------------- #

    def approve(self, caller: bytes, spender: bytes, amount: int) -> Any:
        self._check_addr(caller)
        self._check_addr(spender)
        self._check_amount(amount)
        with self._lock:
            self._allowances[(bytes(caller), bytes(spender))] = amount
        return True

    def transfer(self, caller: bytes, to: bytes, amount: int) -> Any:
        self._do_transfer(caller, to, amount)
        return None

    def transfer_from(self, caller: bytes, owner: bytes, to: bytes, amount: int) -> Any:
        self._do_transfer_from(caller, owner, to, amount)
        return None

    # ----------------------------- internals --------------------------- #

    def _credited(self, amount: int) -> int:
        """Amount the receiver actually gets for a nominal `amount`."""
        return amount

    def _do_transfer(self, frm: bytes, to: bytes, amount: int) -> None:
        self._check_addr(frm)
        self._check_addr(to)
        self._check_amount(amount)
        with self._lock:
            if self.balance_of(frm) < amount:
                raise TokenError("TOKEN:INSUFFICIENT_BALANCE")
            self._move(frm, to, amount)
        self._fire(frm, to, amount)

    def _do_transfer_from(self, caller: bytes, owner: bytes, to: bytes, amount: int) -> None:
        self._check_addr(caller)
        self._check_addr(owner)
        self._check_addr(to)
        self._check_amount(amount)
        with self._lock:
            allow = self.allowance(owner, caller)
            if allow < amount:
                raise TokenError("TOKEN:ALLOWANCE_LOW")
            if self.balance_of(owner) < amount:
                raise TokenError("TOKEN:INSUFFICIENT_BALANCE")
            self._allowances[(bytes(owner), bytes(caller))] = allow - amount
            self._move(owner, to, amount)
        self._fire(owner, to, amount)

    def _move(self, frm: bytes, to: bytes, amount: int) -> None:
        credited = self._credited(amount)
        burned = amount - credited
        bfrm, bto = bytes(frm), bytes(to)
        self._balances[bfrm] = self.balance_of(bfrm) - amount
        self._balances[bto] = self._add_checked(self.balance_of(bto), credited)
        self._supply -= burned

    def _fire(self, frm: bytes, to: bytes, amount: int) -> None:
        # Called outside the lock so a hook may call back into this token.
        if self.on_transfer is not None:
            self.on_transfer(bytes(frm), bytes(to), amount)

    def _check_addr(self, addr: bytes) -> None:
        if not isinstance(addr, (bytes, bytearray)) or is_zero(bytes(addr)):
            raise TokenError("TOKEN:BAD_ADDRESS")

    def _check_amount(self, amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise TokenError("TOKEN:BAD_AMOUNT")
        if amount.bit_length() > self.word_bits:
            raise TokenError("TOKEN:AMOUNT_OOB")

    def _add_checked(self, a: int, b: int) -> int:
        c = a + b
        if c.bit_length() > self.word_bits:
            raise TokenError("TOKEN:OVERFLOW")
        return c


class VoidToken(FungibleToken):
    """Returns nothing; failure is signalled only by raising."""


class BoolToken(FungibleToken):
    """Returns True on success and False on failure; never raises TokenError."""

    def transfer(self, caller: bytes, to: bytes, amount: int) -> Any:
        try:
            self._do_transfer(caller, to, amount)
        except TokenError:
            return False
        return True

    def transfer_from(self, caller: bytes, owner: bytes, to: bytes, amount: int) -> Any:
        try:
            self._do_transfer_from(caller, owner, to, amount)
        except TokenError:
            return False
        return True


class FeeOnTransferToken(BoolToken):
    """Deducts `transfer_fee_bps` from every movement and burns it."""

    def __init__(self, address: bytes, *, transfer_fee_bps: int, symbol: str = "FOT",
                 word_bits: int = U256_BITS) -> None:
        super().__init__(address, symbol=symbol, word_bits=word_bits)
        self.transfer_fee_bps = check_bps(transfer_fee_bps)

    def _credited(self, amount: int) -> int:
        return amount - apply_bps(amount, self.transfer_fee_bps)


__all__ = [
    "TokenError",
    "TransferHook",
    "FungibleToken",
    "VoidToken",
    "BoolToken",
    "FeeOnTransferToken",
]
