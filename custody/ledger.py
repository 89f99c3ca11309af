"""
custody.ledger: conditional custody of fungible value.

A sender deposits value for a recipient together with a hash commitment and a
deadline. Up to and including the deadline the recipient can claim by
revealing the secret; strictly after the deadline the sender can take the
deposit back. Exactly one of the two ever happens per record.

Typical flow
------------
1) deposit(ctx, token, amount, recipient, deadline, secret_hash) -> record id
2) either
   - claim(ctx, id, secret)     recipient, ctx.timestamp <= deadline
   - refund(ctx, id)            sender,    ctx.timestamp >  deadline

Accounting rules
----------------
- The recorded amount is what the ledger's balance actually grew by during
  transfer-in, not the nominal amount (fee-on-transfer assets).
- A claim pays `amount_received - fee` to the recipient and `fee` to the
  administrator, fee = floor(amount_received * fee_bps / 10_000) at the rate
  current when the claim executes. Refunds are fee-free.

Execution model
---------------
Every state-changing entry point runs under one `ReentrancyGuard` and inside an
atomic scope: on any exception the record table, fee rate, administrator,
pending notifications and every asset touched are restored to their state at
entry. Queries hold the same lock, so no thread sees a half-finished
operation; observers are notified only after the lock is released. Records
are marked terminal *before* any outbound transfer so a nested call, had it
slipped past the guard, would still find the record terminal.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Protocol, Tuple, runtime_checkable

from .admin import Administration
from .commitment import require_commitment, verify_commitment
from .config import LedgerConfig
from .context import CallContext, ContextError, require_non_negative_int, to_bytes
from .errors import (
    AlreadyTerminal,
    BalanceInvariantViolation,
    DeadlinePassed,
    DeadlineTooSoon,
    InvalidAmount,
    NotExpired,
    NotRecipient,
    NotSender,
    ValidationError,
    ZeroIdentity,
    ZeroReceipt,
)
from .events import EV_CLAIMED, EV_DEPOSITED, EV_FEE_CHANGED, EV_REFUNDED, EventSink
from .fees import FeeSplit, check_bps, compute_fee, require_word
from .guard import ReentrancyGuard
from .records import Address, CustodyRecord, RecordId, RecordStatus, is_zero
from .store import SNAPSHOT_VERSION, RecordTable
from .transfer import AssetGateway, AssetRegistry

log = logging.getLogger(__name__)


@runtime_checkable
class Checkpointable(Protocol):
    def snapshot(self) -> Any: ...

    def restore(self, state: Any) -> None: ...


class _Scope:
    """Checkpoints collected for one atomic operation."""

    def __init__(self) -> None:
        self._saved: List[Tuple[Checkpointable, Any]] = []

    def track(self, obj: Any) -> None:
        if not isinstance(obj, Checkpointable):
            raise TypeError(f"{type(obj).__name__} cannot be checkpointed")
        if any(o is obj for o, _ in self._saved):
            return
        self._saved.append((obj, obj.snapshot()))

    def rollback(self) -> None:
        for obj, state in reversed(self._saved):
            obj.restore(state)


class EscrowLedger:
    """
    Custody ledger holding deposits under `address` in the assets of `assets`.

    `admin` is the initial administrator (fee beneficiary and sole writer of
    the fee rate); pass None to start without one.
    """

    def __init__(
        self,
        *,
        address: bytes | str,
        assets: AssetRegistry,
        admin: Optional[bytes | str],
        config: Optional[LedgerConfig] = None,
        events: Optional[EventSink] = None,
    ) -> None:
        self.config = config or LedgerConfig()
        self.address = to_bytes(address)
        if is_zero(self.address) or len(self.address) != self.config.address_len:
            raise ValidationError(
                f"ledger address must be a non-zero {self.config.address_len}-byte identity"
            )
        self.assets = assets
        self.events = events or EventSink()
        self.table = RecordTable()
        self.admin = Administration(to_bytes(admin) if admin is not None else None, self.events)
        self._fee_bps = check_bps(self.config.fee_bps)
        self._guard = ReentrancyGuard()

    # ------------------------------------------------------------------ #
    # Atomic, non-reentrant execution
    # ------------------------------------------------------------------ #

    @contextmanager
    def _operation(self, name: str) -> Iterator[_Scope]:
        with self._guard.enter(name):
            scope = _Scope()
            scope.track(self.table)
            scope.track(self.admin)
            fee_bps = self._fee_bps
            mark = self.events.checkpoint()
            try:
                yield scope
            except BaseException as e:
                scope.rollback()
                self._fee_bps = fee_bps
                self.events.rollback(mark)
                log.debug("%s rolled back: %s", name, e)
                raise
            batch = self.events.commit(notify=False)
        self.events.notify(batch)

    # ------------------------------------------------------------------ #
    # Deposit accounting
    # ------------------------------------------------------------------ #

    def deposit(
        self,
        ctx: CallContext,
        token: bytes,
        amount_expected: int,
        recipient: bytes,
        deadline: int,
        secret_hash: bytes,
    ) -> RecordId:
        """
        Pull `amount_expected` of `token` from the caller into custody for
        `recipient` and return the new record id.

        The balance of the ledger is sampled before and after transfer-in and
        only the difference is recorded.
        """
        with self._operation("deposit") as scope:
            asset = self.assets.resolve(token)
            scope.track(asset)
            sender = self._require_identity(ctx.caller, "sender")
            amount = require_word(amount_expected, word_bits=self.config.word_bits, name="amount_expected")
            if amount == 0:
                raise InvalidAmount("amount_expected must be positive")
            recipient = self._require_identity(recipient, "recipient")
            commitment = require_commitment(secret_hash)
            deadline = self._require_timestamp(deadline)
            earliest = ctx.timestamp + self.config.min_lock_seconds
            if deadline < earliest:
                raise DeadlineTooSoon(deadline=deadline, earliest=earliest)

            gateway = AssetGateway(asset, self.address)
            before = gateway.balance_of()
            gateway.transfer_in(sender, self.address, amount).raise_for_failure(
                "in", token=gateway.token, amount=amount
            )
            after = gateway.balance_of()
            if after < before:
                raise BalanceInvariantViolation(before=before, after=after)
            received = after - before
            if received == 0:
                raise ZeroReceipt("transfer-in credited nothing", details={"amount_expected": amount})

            record = CustodyRecord(
                record_id=self.table.allocate(),
                sender=sender,
                token=gateway.token,
                amount_expected=amount,
                amount_received=received,
                recipient=recipient,
                created_at=ctx.timestamp,
                deadline=deadline,
                secret_hash=commitment,
            )
            self.table.insert(record)
            self.events.emit(
                EV_DEPOSITED,
                {
                    "id": record.record_id,
                    "sender": record.sender,
                    "token": record.token,
                    "amountExpected": record.amount_expected,
                    "amountReceived": record.amount_received,
                    "recipient": record.recipient,
                    "deadline": record.deadline,
                    "secretHash": record.secret_hash,
                },
            )
        log.info(
            "deposit #%d: %d/%d of %s from %s to %s until %d",
            record.record_id, received, amount, record.token.hex(),
            sender.hex(), recipient.hex(), deadline,
        )
        return record.record_id

    # ------------------------------------------------------------------ #
    # Release authorization + payout
    # ------------------------------------------------------------------ #

    def claim(self, ctx: CallContext, record_id: RecordId, secret: bytes) -> FeeSplit:
        """
        Release record `record_id` to its recipient against `secret`.

        Returns the (payout, fee) split that was transferred.
        """
        with self._operation("claim") as scope:
            rec = self.table.get(record_id)
            self._require_active(rec)
            if ctx.timestamp > rec.deadline:
                raise DeadlinePassed(record_id=rec.record_id, now=ctx.timestamp, deadline=rec.deadline)
            if ctx.caller != rec.recipient:
                raise NotRecipient(record_id=rec.record_id)
            verify_commitment(
                self.config.commitment_scheme, secret, rec.recipient, rec.record_id, rec.secret_hash
            )

            beneficiary = self.admin.current_admin()
            fee_bps = self._fee_bps if beneficiary is not None else 0
            split = compute_fee(rec.amount_received, fee_bps, word_bits=self.config.word_bits)

            asset = self.assets.resolve(rec.token)
            scope.track(asset)
            self.table.finalize(rec.mark_claimed())

            gateway = AssetGateway(asset, self.address)
            if split.payout > 0:
                gateway.transfer_out(rec.recipient, split.payout).raise_for_failure(
                    "out", record_id=rec.record_id, leg="payout"
                )
            if split.fee > 0:
                gateway.transfer_out(beneficiary, split.fee).raise_for_failure(
                    "out", record_id=rec.record_id, leg="fee"
                )
            self.events.emit(
                EV_CLAIMED,
                {"id": rec.record_id, "recipient": rec.recipient, "payout": split.payout, "fee": split.fee},
            )
        log.info("claim #%d: payout=%d fee=%d (bps=%d)", rec.record_id, split.payout, split.fee, fee_bps)
        return split

    def refund(self, ctx: CallContext, record_id: RecordId) -> int:
        """Return the full received amount of an expired record to its sender."""
        with self._operation("refund") as scope:
            rec = self.table.get(record_id)
            self._require_active(rec)
            if ctx.timestamp <= rec.deadline:
                raise NotExpired(record_id=rec.record_id, now=ctx.timestamp, deadline=rec.deadline)
            if ctx.caller != rec.sender:
                raise NotSender(record_id=rec.record_id)

            asset = self.assets.resolve(rec.token)
            scope.track(asset)
            self.table.finalize(rec.mark_refunded())

            AssetGateway(asset, self.address).transfer_out(rec.sender, rec.amount_received).raise_for_failure(
                "out", record_id=rec.record_id, leg="refund"
            )
            self.events.emit(
                EV_REFUNDED, {"id": rec.record_id, "sender": rec.sender, "amount": rec.amount_received}
            )
        log.info("refund #%d: %d to %s", rec.record_id, rec.amount_received, rec.sender.hex())
        return rec.amount_received

    # ------------------------------------------------------------------ #
    # Administration
    # ------------------------------------------------------------------ #

    @property
    def fee_bps(self) -> int:
        with self._guard.locked():
            return self._fee_bps

    def set_fee_bps(self, ctx: CallContext, new_fee_bps: int) -> None:
        """Admin-only. Applies to every claim executed from now on, including on ACTIVE records."""
        with self._operation("set_fee_bps"):
            self.admin.require_admin(ctx.caller)
            new = check_bps(new_fee_bps)
            old, self._fee_bps = self._fee_bps, new
            self.events.emit(EV_FEE_CHANGED, {"old": old, "new": new})
        log.info("fee changed %d -> %d bps", old, new)

    def transfer_administration(self, ctx: CallContext, new_admin: bytes) -> None:
        with self._operation("transfer_administration"):
            self.admin.transfer_administration(ctx.caller, to_bytes(new_admin))

    def renounce_administration(self, ctx: CallContext) -> None:
        with self._operation("renounce_administration"):
            self.admin.renounce_administration(ctx.caller)

    def current_admin(self) -> Optional[Address]:
        with self._guard.locked():
            return self.admin.current_admin()

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    @property
    def next_id(self) -> RecordId:
        """Id the next successful deposit will receive."""
        with self._guard.locked():
            return self.table.next_id

    def get_record(self, record_id: RecordId) -> CustodyRecord:
        with self._guard.locked():
            return self.table.get(record_id)

    def status(self, record_id: RecordId) -> RecordStatus:
        return self.get_record(record_id).status

    def records(self, status: Optional[RecordStatus] = None) -> Iterator[CustodyRecord]:
        """Records in id order, optionally filtered; taken as one consistent view."""
        with self._guard.locked():
            rows = [r for r in self.table if status is None or r.status is status]
        return iter(rows)

    def is_claimable(self, record_id: RecordId, now: int) -> bool:
        rec = self.get_record(record_id)
        return not rec.is_terminal and now <= rec.deadline

    def is_refundable(self, record_id: RecordId, now: int) -> bool:
        rec = self.get_record(record_id)
        return not rec.is_terminal and now > rec.deadline

    def outstanding(self, token: bytes) -> int:
        """Sum still owed for ACTIVE records of `token`."""
        t = to_bytes(token)
        return sum(r.amount_received for r in self.records(RecordStatus.ACTIVE) if r.token == t)

    # ------------------------------------------------------------------ #
    # Persistence
    # ------------------------------------------------------------------ #

    def snapshot(self) -> Dict[str, Any]:
        with self._guard.locked():
            admin = self.admin.current_admin()
            return {
                "version": SNAPSHOT_VERSION,
                "address": "0x" + self.address.hex(),
                "next_id": self.table.next_id,
                "fee_bps": self._fee_bps,
                "admin": ("0x" + admin.hex()) if admin is not None else None,
                "config": self.config.to_dict(),
                "records": self.table.dump(),
            }

    @classmethod
    def from_snapshot(
        cls,
        data: Mapping[str, Any],
        *,
        assets: AssetRegistry,
        config: Optional[LedgerConfig] = None,
        events: Optional[EventSink] = None,
    ) -> "EscrowLedger":
        if data.get("version") != SNAPSHOT_VERSION:
            raise ValueError(f"unsupported snapshot version {data.get('version')!r}")
        cfg = config or LedgerConfig(**dict(data.get("config") or {}))
        ledger = cls(address=data["address"], assets=assets, admin=data.get("admin"), config=cfg, events=events)
        ledger.table = RecordTable.load(list(data.get("records") or []), int(data["next_id"]))
        ledger._fee_bps = check_bps(int(data["fee_bps"]))
        return ledger

    # ------------------------------------------------------------------ #
    # Validation helpers
    # ------------------------------------------------------------------ #

    def _require_identity(self, value: Any, name: str) -> Address:
        if value is None:
            raise ZeroIdentity(f"{name} is required")
        try:
            addr = to_bytes(value)
        except ContextError as e:
            raise ZeroIdentity(f"{name} is not an identity: {e}") from e
        if is_zero(addr):
            raise ZeroIdentity(f"{name} must be a non-zero identity")
        if len(addr) != self.config.address_len:
            raise ZeroIdentity(
                f"{name} must be {self.config.address_len} bytes", details={"len": len(addr)}
            )
        return addr

    def _require_timestamp(self, value: Any) -> int:
        try:
            return require_non_negative_int("deadline", value)
        except ValueError as e:
            raise ValidationError(str(e)) from e

    @staticmethod
    def _require_active(rec: CustodyRecord) -> None:
        if rec.is_terminal:
            raise AlreadyTerminal(record_id=rec.record_id, status=rec.status.value)


__all__ = ["EscrowLedger", "Checkpointable"]
