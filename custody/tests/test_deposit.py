from __future__ import annotations

import pytest

from custody.errors import (
    BalanceInvariantViolation,
    DeadlineTooSoon,
    InvalidAmount,
    InvalidSecretHash,
    InvalidToken,
    TransferFailed,
    ValidationError,
    ZeroIdentity,
    ZeroReceipt,
)
from custody.events import EV_DEPOSITED
from custody.ledger import EscrowLedger
from custody.records import RecordStatus, zero_address
from custody.tokens import BoolToken, FeeOnTransferToken, FungibleToken
from custody.transfer import AssetRegistry

from .conftest import DEADLINE, INITIAL_BALANCE, SECRET, T0, addr, commit


def test_deposit_records_and_holds_funds(ledger, token, alice, bob, deposit, ledger_addr):
    assert ledger.next_id == 1
    rid = deposit(1_000)
    assert rid == 1
    assert ledger.next_id == 2

    rec = ledger.get_record(rid)
    assert rec.sender == alice
    assert rec.recipient == bob
    assert rec.token == token.address
    assert rec.amount_expected == 1_000
    assert rec.amount_received == 1_000
    assert rec.created_at == T0
    assert rec.deadline == DEADLINE
    assert rec.secret_hash == commit(SECRET, bob)
    assert rec.status is RecordStatus.ACTIVE

    assert token.balance_of(ledger_addr) == 1_000
    assert token.balance_of(alice) == INITIAL_BALANCE - 1_000
    assert ledger.outstanding(token.address) == 1_000


def test_ids_are_sequential(deposit, ledger):
    ids = [deposit(10) for _ in range(3)]
    assert ids == [1, 2, 3]
    assert [r.record_id for r in ledger.records()] == [1, 2, 3]


def test_deposited_event(deposit, events, alice, bob, token):
    rid = deposit(1_000)
    (ev,) = events.events(EV_DEPOSITED)
    assert ev.args == {
        "id": rid,
        "sender": alice,
        "token": token.address,
        "amountExpected": 1_000,
        "amountReceived": 1_000,
        "recipient": bob,
        "deadline": DEADLINE,
        "secretHash": commit(SECRET, bob),
    }


def test_fee_on_transfer_records_measured_amount(ledger_addr, admin, config, alice, bob, ctx):
    fot = FeeOnTransferToken(addr("fot"), transfer_fee_bps=100)
    fot.mint(alice, 10_000)
    fot.approve(alice, ledger_addr, 10_000)
    ledger = EscrowLedger(address=ledger_addr, assets=AssetRegistry(fot), admin=admin, config=config)

    rid = ledger.deposit(ctx(alice), fot.address, 1_000, bob, DEADLINE, commit(SECRET, bob))
    rec = ledger.get_record(rid)
    assert rec.amount_expected == 1_000
    assert rec.amount_received == 990
    assert fot.balance_of(ledger_addr) == 990


def test_deadline_at_minimum_lock_is_accepted(ledger, token, alice, bob, ctx):
    rid = ledger.deposit(ctx(alice), token.address, 5, bob, T0 + 60, commit(SECRET, bob))
    assert ledger.get_record(rid).deadline == T0 + 60


def test_deadline_inside_minimum_lock_is_rejected(ledger, token, alice, bob, ctx):
    with pytest.raises(DeadlineTooSoon) as ei:
        ledger.deposit(ctx(alice), token.address, 5, bob, T0 + 59, commit(SECRET, bob))
    assert ei.value.details == {"deadline": T0 + 59, "earliest": T0 + 60}
    assert ledger.next_id == 1


@pytest.mark.parametrize("amount", [0, -1, True, 1.5, 1 << 256])
def test_invalid_amount(ledger, token, alice, bob, ctx, amount):
    with pytest.raises(InvalidAmount):
        ledger.deposit(ctx(alice), token.address, amount, bob, DEADLINE, commit(SECRET, bob))


def test_zero_or_unknown_token(ledger, alice, bob, ctx):
    for tok in (zero_address(), b"", None, addr("nope")):
        with pytest.raises(InvalidToken):
            ledger.deposit(ctx(alice), tok, 10, bob, DEADLINE, commit(SECRET, bob))


def test_zero_recipient(ledger, token, alice, ctx, bob):
    with pytest.raises(ZeroIdentity):
        ledger.deposit(ctx(alice), token.address, 10, zero_address(), DEADLINE, commit(SECRET, bob))
    with pytest.raises(ZeroIdentity):
        ledger.deposit(ctx(alice), token.address, 10, b"\x01" * 20, DEADLINE, commit(SECRET, bob))


def test_zero_sender(ledger, token, bob, ctx):
    with pytest.raises(ZeroIdentity):
        ledger.deposit(ctx(zero_address()), token.address, 10, bob, DEADLINE, commit(SECRET, bob))


@pytest.mark.parametrize("bad", [b"\x00" * 32, b"\x01" * 31, b"", "ab" * 32])
def test_invalid_secret_hash(ledger, token, alice, bob, ctx, bad):
    with pytest.raises(InvalidSecretHash):
        ledger.deposit(ctx(alice), token.address, 10, bob, DEADLINE, bad)


def test_bad_deadline_type(ledger, token, alice, bob, ctx):
    with pytest.raises(ValidationError):
        ledger.deposit(ctx(alice), token.address, 10, bob, "tomorrow", commit(SECRET, bob))


def test_insufficient_allowance_fails_without_state(ledger, token, alice, bob, ctx, ledger_addr, events):
    token.approve(alice, ledger_addr, 5)
    with pytest.raises(TransferFailed) as ei:
        ledger.deposit(ctx(alice), token.address, 10, bob, DEADLINE, commit(SECRET, bob))
    assert ei.value.details["reason"] == "returned_false"
    assert ei.value.details["direction"] == "in"
    assert ledger.next_id == 1
    assert len(ledger.table) == 0
    assert len(events) == 0
    assert token.balance_of(alice) == INITIAL_BALANCE


class _ShrinkingToken(FungibleToken):
    """Moves the sender's funds but takes some of the holder's balance away."""

    def __init__(self, address, holder):
        super().__init__(address)
        self.holder = holder

    def transfer_from(self, caller, owner, to, amount):
        super().transfer_from(caller, owner, to, amount)
        self._balances[self.holder] -= amount + 1
        return None


class _SwallowingToken(FungibleToken):
    """Reports success but credits nothing."""

    def transfer_from(self, caller, owner, to, amount):
        return True


def _ledger_with(token, ledger_addr, admin, config):
    return EscrowLedger(address=ledger_addr, assets=AssetRegistry(token), admin=admin, config=config)


def test_balance_decrease_is_rejected(ledger_addr, admin, config, alice, bob, ctx):
    t = _ShrinkingToken(addr("shrink"), ledger_addr)
    t.mint(alice, 100)
    t.mint(ledger_addr, 100)
    t.approve(alice, ledger_addr, 100)
    ledger = _ledger_with(t, ledger_addr, admin, config)
    with pytest.raises(BalanceInvariantViolation):
        ledger.deposit(ctx(alice), t.address, 10, bob, DEADLINE, commit(SECRET, bob))
    # Token state was rolled back with the failed operation.
    assert t.balance_of(ledger_addr) == 100
    assert t.balance_of(alice) == 100


def test_zero_receipt_is_rejected(ledger_addr, admin, config, alice, bob, ctx):
    t = _SwallowingToken(addr("swallow"))
    t.mint(alice, 100)
    ledger = _ledger_with(t, ledger_addr, admin, config)
    with pytest.raises(ZeroReceipt):
        ledger.deposit(ctx(alice), t.address, 10, bob, DEADLINE, commit(SECRET, bob))
    assert ledger.next_id == 1


def test_secret_hash_is_opaque(ledger, token, alice, bob, ctx):
    # Any non-zero 32-byte value is accepted; correctness is only checked on claim.
    rid = ledger.deposit(ctx(alice), token.address, 10, bob, DEADLINE, b"\x07" * 32)
    assert ledger.get_record(rid).secret_hash == b"\x07" * 32


def test_multiple_tokens(ledger_addr, admin, config, alice, bob, ctx):
    a = BoolToken(addr("a"))
    b = BoolToken(addr("b"))
    for t in (a, b):
        t.mint(alice, 100)
        t.approve(alice, ledger_addr, 100)
    ledger = EscrowLedger(address=ledger_addr, assets=AssetRegistry(a, b), admin=admin, config=config)
    ledger.deposit(ctx(alice), a.address, 30, bob, DEADLINE, commit(SECRET, bob))
    ledger.deposit(ctx(alice), b.address, 40, bob, DEADLINE, commit(SECRET, bob))
    assert ledger.outstanding(a.address) == 30
    assert ledger.outstanding(b.address) == 40


@pytest.mark.parametrize("ret", [1, (2).to_bytes(32, "big"), b"\x01", "ok"])
def test_malformed_transfer_in_result_creates_nothing(ledger, token, alice, bob, ctx, ledger_addr, events, ret):
    def odd_transfer_from(caller, owner, to, amount):
        token._do_transfer_from(caller, owner, to, amount)
        return ret

    token.transfer_from = odd_transfer_from  # type: ignore[method-assign]
    with pytest.raises(TransferFailed) as ei:
        ledger.deposit(ctx(alice), token.address, 10, bob, DEADLINE, commit(SECRET, bob))
    assert ei.value.details["reason"] == "malformed_return"
    assert ledger.next_id == 1
    assert len(ledger.table) == 0
    assert len(events) == 0
    # The movement the asset did make was undone with the operation.
    assert token.balance_of(alice) == INITIAL_BALANCE
    assert token.balance_of(ledger_addr) == 0
