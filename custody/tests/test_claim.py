from __future__ import annotations

import pytest

from custody.errors import (
    AlreadyTerminal,
    DeadlinePassed,
    FeeOverflow,
    InvalidSecret,
    NotRecipient,
    RecordNotFound,
)
from custody.config import LedgerConfig
from custody.events import EV_CLAIMED
from custody.fees import FeeSplit
from custody.ledger import EscrowLedger
from custody.records import RecordStatus
from custody.tokens import BoolToken, FeeOnTransferToken
from custody.transfer import AssetRegistry

from .conftest import DEADLINE, SECRET, T0, addr, commit


def test_claim_pays_recipient_and_fee(ledger, token, bob, admin, ctx, deposit, ledger_addr):
    rid = deposit(1_000)
    split = ledger.claim(ctx(bob, T0 + 10), rid, SECRET)
    assert split == FeeSplit(payout=975, fee=25)
    assert token.balance_of(bob) == 975
    assert token.balance_of(admin) == 25
    assert token.balance_of(ledger_addr) == 0
    assert ledger.status(rid) is RecordStatus.CLAIMED
    assert ledger.outstanding(token.address) == 0


def test_claim_event(ledger, bob, ctx, deposit, events):
    rid = deposit(1_000)
    ledger.claim(ctx(bob), rid, SECRET)
    (ev,) = events.events(EV_CLAIMED)
    assert ev.args == {"id": rid, "recipient": bob, "payout": 975, "fee": 25}


def test_claim_exactly_at_deadline(ledger, bob, ctx, deposit):
    rid = deposit(100)
    ledger.claim(ctx(bob, DEADLINE), rid, SECRET)
    assert ledger.status(rid) is RecordStatus.CLAIMED


def test_claim_after_deadline(ledger, bob, ctx, deposit):
    rid = deposit(100)
    with pytest.raises(DeadlinePassed) as ei:
        ledger.claim(ctx(bob, DEADLINE + 1), rid, SECRET)
    assert ei.value.details["deadline"] == DEADLINE
    assert ledger.status(rid) is RecordStatus.ACTIVE


def test_wrong_secret(ledger, token, bob, ctx, deposit, ledger_addr, events):
    rid = deposit(100)
    with pytest.raises(InvalidSecret):
        ledger.claim(ctx(bob), rid, b"not-the-secret")
    assert ledger.status(rid) is RecordStatus.ACTIVE
    assert token.balance_of(ledger_addr) == 100
    assert events.events(EV_CLAIMED) == []


def test_empty_secret(ledger, bob, ctx, deposit):
    rid = deposit(100)
    with pytest.raises(InvalidSecret):
        ledger.claim(ctx(bob), rid, b"")


def test_only_recipient_may_claim(ledger, alice, carol, ctx, deposit):
    rid = deposit(100)
    for who in (alice, carol):
        with pytest.raises(NotRecipient):
            ledger.claim(ctx(who), rid, SECRET)


def test_secret_cannot_be_replayed_by_other_caller(ledger, carol, ctx, deposit):
    # The commitment binds the recipient, so an observed secret is useless to anyone else.
    rid = deposit(100)
    with pytest.raises(NotRecipient):
        ledger.claim(ctx(carol), rid, SECRET)


def test_double_claim(ledger, bob, ctx, deposit):
    rid = deposit(100)
    ledger.claim(ctx(bob), rid, SECRET)
    with pytest.raises(AlreadyTerminal) as ei:
        ledger.claim(ctx(bob), rid, SECRET)
    assert ei.value.details["status"] == "claimed"


@pytest.mark.parametrize("rid", [0, 2, 99, -1, "1", None, True])
def test_unknown_record(ledger, bob, ctx, deposit, rid):
    deposit(100)
    with pytest.raises(RecordNotFound):
        ledger.claim(ctx(bob), rid, SECRET)


def test_fee_uses_rate_at_claim_time(ledger, token, bob, admin, ctx, deposit):
    rid = deposit(1_000)
    ledger.set_fee_bps(ctx(admin), 1_000)
    assert ledger.claim(ctx(bob), rid, SECRET) == FeeSplit(900, 100)


def test_zero_fee(ledger, token, bob, admin, ctx, deposit):
    ledger.set_fee_bps(ctx(admin), 0)
    rid = deposit(1_000)
    assert ledger.claim(ctx(bob), rid, SECRET) == FeeSplit(1_000, 0)
    assert token.balance_of(admin) == 0


def test_full_fee_skips_zero_payout(ledger, token, bob, admin, ctx, deposit):
    ledger.set_fee_bps(ctx(admin), 10_000)
    rid = deposit(1_000)
    assert ledger.claim(ctx(bob), rid, SECRET) == FeeSplit(0, 1_000)
    assert token.balance_of(bob) == 0
    assert token.balance_of(admin) == 1_000


def test_fee_rounds_down(ledger, bob, ctx, deposit):
    rid = deposit(39)
    # 39 * 250 / 10_000 = 0.975 -> 0
    assert ledger.claim(ctx(bob), rid, SECRET) == FeeSplit(39, 0)


def test_fee_overflow_rejects_claim(ledger_addr, admin, alice, bob, ctx):
    big = (1 << 64) - 1
    t = BoolToken(addr("wide"))
    t.mint(alice, big)
    t.approve(alice, ledger_addr, big)
    cfg = LedgerConfig(word_bits=64, fee_bps=250)
    ledger = EscrowLedger(address=ledger_addr, assets=AssetRegistry(t), admin=admin, config=cfg)
    rid = ledger.deposit(ctx(alice), t.address, big, bob, DEADLINE, commit(SECRET, bob))

    with pytest.raises(FeeOverflow):
        ledger.claim(ctx(bob), rid, SECRET)
    assert ledger.status(rid) is RecordStatus.ACTIVE
    assert t.balance_of(ledger_addr) == big


def test_claimability_queries(ledger, deposit):
    rid = deposit(100)
    assert ledger.is_claimable(rid, DEADLINE)
    assert not ledger.is_refundable(rid, DEADLINE)
    assert not ledger.is_claimable(rid, DEADLINE + 1)
    assert ledger.is_refundable(rid, DEADLINE + 1)


def test_digest_for_other_recipient_does_not_open(ledger, token, alice, bob, carol, ctx):
    rid = ledger.deposit(ctx(alice), token.address, 100, bob, DEADLINE, commit(SECRET, carol))
    with pytest.raises(InvalidSecret):
        ledger.claim(ctx(bob), rid, SECRET)


def test_fee_on_transfer_claim_uses_received_amount(ledger_addr, admin, config, alice, bob, ctx):
    fot = FeeOnTransferToken(addr("fot"), transfer_fee_bps=100)
    fot.mint(alice, 1_000)
    fot.approve(alice, ledger_addr, 1_000)
    ledger = EscrowLedger(address=ledger_addr, assets=AssetRegistry(fot), admin=admin, config=config)
    rid = ledger.deposit(ctx(alice), fot.address, 1_000, bob, DEADLINE, commit(SECRET, bob))
    # 990 * 250 / 10_000 = 24.75 -> 24
    assert ledger.claim(ctx(bob), rid, SECRET) == FeeSplit(966, 24)
    assert fot.balance_of(ledger_addr) == 0
