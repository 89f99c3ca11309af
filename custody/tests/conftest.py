# -*- coding: utf-8 -*-
"""
custody.tests.conftest
======================

Deterministic fixtures for the custody ledger.

- Identities are 32-byte values derived from a SHA3 stream, so every run sees
  the same addresses without importing 'random'.
- `token` is a BoolToken with alice funded and the ledger pre-approved.
- `ledger` runs with a 60s minimum lock and a 2.5% fee paid to `admin`.

Usage:
    def test_flow(ledger, token, alice, bob, ctx):
        rid = ledger.deposit(ctx(alice, 1000), token.address, 1000, bob, 2000, commit(b"s", bob))
"""
from __future__ import annotations

import hashlib
import os
from typing import Callable

import pytest

from custody.commitment import compute_commitment
from custody.config import LedgerConfig
from custody.context import CallContext
from custody.events import EventSink
from custody.ledger import EscrowLedger
from custody.tokens import BoolToken
from custody.transfer import AssetRegistry

os.environ.setdefault("PYTHONHASHSEED", "0")
os.environ.setdefault("TZ", "UTC")

PROJECT_TEST_SEED = 1337

T0 = 1_000
DEADLINE = T0 + 3_600
INITIAL_BALANCE = 1_000_000
SECRET = b"open-sesame"


def _drbg(label: bytes, n: int) -> bytes:
    """keccak-chain stream; not cryptographic, fixtures only."""
    out = b""
    ctr = 0
    while len(out) < n:
        m = hashlib.sha3_256()
        m.update(b"custody-drbg-v1|")
        m.update(str(PROJECT_TEST_SEED).encode("ascii"))
        m.update(label)
        m.update(ctr.to_bytes(8, "big"))
        out += m.digest()
        ctr += 1
    return out[:n]


def addr(label: str) -> bytes:
    return _drbg(b"addr|" + label.encode("utf-8"), 32)


def commit(secret: bytes, recipient: bytes) -> bytes:
    return compute_commitment(secret, recipient)


# --- identities -----------------------------------------------------------------

@pytest.fixture
def ledger_addr() -> bytes:
    return addr("ledger")


@pytest.fixture
def admin() -> bytes:
    return addr("admin")


@pytest.fixture
def alice() -> bytes:
    return addr("alice")


@pytest.fixture
def bob() -> bytes:
    return addr("bob")


@pytest.fixture
def carol() -> bytes:
    return addr("carol")


# --- environment ----------------------------------------------------------------

@pytest.fixture
def ctx() -> Callable[[bytes, int], CallContext]:
    def _make(caller: bytes, timestamp: int = T0) -> CallContext:
        return CallContext(caller=caller, timestamp=timestamp)

    return _make


@pytest.fixture
def config() -> LedgerConfig:
    return LedgerConfig(min_lock_seconds=60, fee_bps=250)


@pytest.fixture
def token(alice: bytes, ledger_addr: bytes) -> BoolToken:
    t = BoolToken(addr("token"), symbol="TKN")
    t.mint(alice, INITIAL_BALANCE)
    t.approve(alice, ledger_addr, INITIAL_BALANCE)
    return t


@pytest.fixture
def assets(token: BoolToken) -> AssetRegistry:
    return AssetRegistry(token)


@pytest.fixture
def events() -> EventSink:
    return EventSink()


@pytest.fixture
def ledger(ledger_addr, assets, admin, config, events) -> EscrowLedger:
    return EscrowLedger(address=ledger_addr, assets=assets, admin=admin, config=config, events=events)


@pytest.fixture
def deposit(ledger, token, alice, bob, ctx) -> Callable[..., int]:
    """Deposit `amount` from alice to bob under SECRET with the default deadline."""

    def _deposit(amount: int = 1_000, *, deadline: int = DEADLINE, secret: bytes = SECRET) -> int:
        return ledger.deposit(ctx(alice), token.address, amount, bob, deadline, commit(secret, bob))

    return _deposit
