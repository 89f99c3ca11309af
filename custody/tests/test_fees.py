from __future__ import annotations

import pytest

from custody.errors import FeeOverflow, InvalidAmount, InvalidFeeBps
from custody.fees import U256_MAX, FeeSplit, apply_bps, checked_mul, compute_fee, require_word


@pytest.mark.parametrize(
    "amount,bps,expected",
    [
        (1_000, 250, FeeSplit(975, 25)),
        (1_000, 0, FeeSplit(1_000, 0)),
        (1_000, 10_000, FeeSplit(0, 1_000)),
        (39, 250, FeeSplit(39, 0)),
        (40, 250, FeeSplit(39, 1)),
        (0, 250, FeeSplit(0, 0)),
    ],
)
def test_compute_fee(amount, bps, expected):
    split = compute_fee(amount, bps)
    assert split == expected
    assert split.payout + split.fee == amount


def test_overflow_is_checked_before_division():
    # amount * bps exceeds 256 bits even though the fee itself would fit
    with pytest.raises(FeeOverflow) as ei:
        compute_fee(U256_MAX, 2)
    assert ei.value.details["word_bits"] == 256
    assert compute_fee(U256_MAX, 1).fee == U256_MAX // 10_000


def test_narrow_word():
    assert compute_fee(1_000, 250, word_bits=32) == FeeSplit(975, 25)
    with pytest.raises(FeeOverflow):
        checked_mul(1 << 31, 2, word_bits=32)


@pytest.mark.parametrize("bps", [-1, 10_001, 2.5, None, False])
def test_bps_bounds(bps):
    with pytest.raises(InvalidFeeBps):
        compute_fee(100, bps)


def test_require_word():
    assert require_word(0) == 0
    assert require_word(U256_MAX) == U256_MAX
    for bad in (-1, U256_MAX + 1, "1", True):
        with pytest.raises(InvalidAmount):
            require_word(bad)


def test_apply_bps_floors():
    assert apply_bps(999, 100) == 9
