# -*- coding: utf-8 -*-
"""
custody.fees
============

Checked, integer-only arithmetic for fee extraction.

Python integers never wrap, so the native word width of the ledger is enforced
explicitly: every product that would not fit in `word_bits` bits is rejected
instead of being computed. The fee on a claim is

    fee    = floor(amount_received * fee_bps / 10_000)
    payout = amount_received - fee

and `payout + fee == amount_received` always holds.
"""

from __future__ import annotations

from typing import Final, NamedTuple

from .config import BPS_DENOMINATOR
from .errors import FeeOverflow, InvalidAmount, InvalidFeeBps

U256_BITS: Final[int] = 256
U256_MAX: Final[int] = (1 << U256_BITS) - 1


def word_max(word_bits: int = U256_BITS) -> int:
    return (1 << word_bits) - 1


def require_word(x: int, *, word_bits: int = U256_BITS, name: str = "amount") -> int:
    """Reject anything outside [0, 2**word_bits - 1]."""
    if isinstance(x, bool) or not isinstance(x, int):
        raise InvalidAmount(f"{name} must be int", details={"type": type(x).__name__})
    if x < 0 or x > word_max(word_bits):
        raise InvalidAmount(f"{name} out of range", details={name: x, "word_bits": word_bits})
    return x


def check_bps(bps: int) -> int:
    if isinstance(bps, bool) or not isinstance(bps, int) or bps < 0 or bps > BPS_DENOMINATOR:
        raise InvalidFeeBps(
            f"fee_bps must be an int in [0, {BPS_DENOMINATOR}]", details={"fee_bps": repr(bps)}
        )
    return bps


def checked_mul(x: int, y: int, *, word_bits: int = U256_BITS) -> int:
    """x*y, or FeeOverflow when the product does not fit the word width."""
    p = x * y
    if p > word_max(word_bits):
        raise FeeOverflow(amount=x, fee_bps=y, word_bits=word_bits)
    return p


class FeeSplit(NamedTuple):
    payout: int
    fee: int


def compute_fee(amount: int, fee_bps: int, *, word_bits: int = U256_BITS) -> FeeSplit:
    """
    Split `amount` into (payout, fee) at `fee_bps`, flooring the fee.

    Raises FeeOverflow before any division if `amount * fee_bps` exceeds the
    word width.
    """
    require_word(amount, word_bits=word_bits)
    check_bps(fee_bps)
    fee = checked_mul(amount, fee_bps, word_bits=word_bits) // BPS_DENOMINATOR
    return FeeSplit(payout=amount - fee, fee=fee)


def apply_bps(amount: int, bps: int) -> int:
    """Return floor(amount * bps / 10_000) without a width check."""
    check_bps(bps)
    return (amount * bps) // BPS_DENOMINATOR


__all__ = [
    "U256_BITS",
    "U256_MAX",
    "word_max",
    "require_word",
    "check_bps",
    "checked_mul",
    "FeeSplit",
    "compute_fee",
    "apply_bps",
]
