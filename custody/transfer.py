"""
custody.transfer: the value-transfer boundary.

The ledger never talks to an asset directly. It goes through an
`AssetGateway` bound to one (token, holder) pair, which exposes the three
collaborator operations

    balance_of(holder) -> int
    transfer_in(frm, to, amount) -> TransferResult     # pull via allowance
    transfer_out(to, amount) -> TransferResult         # push from holder

and folds every way an asset can answer into one `TransferResult`:

    returned None                  -> ok   (void-style asset; not raising is success)
    returned True                  -> ok
    returned 32-byte ABI word == 1 -> ok
    returned False                 -> failed, "returned_false"
    returned anything else         -> failed, "malformed_return"
    raised                         -> failed, "raised:<ExceptionType>"

Only `bool` True counts as true: 1, b"\\x01" and "true" are malformed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Protocol, runtime_checkable

from .errors import InvalidToken, TransferFailed
from .records import is_zero

log = logging.getLogger(__name__)

_ABI_WORD = 32


@runtime_checkable
class ExternalAsset(Protocol):
    """
    Explicit-caller fungible asset surface the gateway drives.

    `snapshot`/`restore` let a failed ledger operation undo every movement it
    made on the asset; an asset without them cannot be registered.
    """

    address: bytes

    def balance_of(self, addr: bytes) -> int: ...

    def snapshot(self) -> Any: ...

    def restore(self, state: Any) -> None: ...

    def transfer(self, caller: bytes, to: bytes, amount: int) -> Any: ...

    def transfer_from(self, caller: bytes, owner: bytes, to: bytes, amount: int) -> Any: ...


@dataclass(frozen=True)
class TransferResult:
    ok: bool
    reason: str = ""

    def raise_for_failure(self, direction: str, **details: Any) -> None:
        if not self.ok:
            raise TransferFailed(direction=direction, reason=self.reason, details=details)


OK = TransferResult(True)


def decode_success(ret: Any) -> TransferResult:
    """Normalize an asset's return value."""
    if ret is None or ret is True:
        return OK
    if ret is False:
        return TransferResult(False, "returned_false")
    if isinstance(ret, (bytes, bytearray)) and len(ret) == _ABI_WORD:
        if int.from_bytes(bytes(ret), "big") == 1:
            return OK
        if not any(ret):
            return TransferResult(False, "returned_false")
    return TransferResult(False, "malformed_return")


class AssetGateway:
    """Collaborator view of one asset from the point of view of `holder`."""

    def __init__(self, asset: ExternalAsset, holder: bytes) -> None:
        self.asset = asset
        self.holder = bytes(holder)

    @property
    def token(self) -> bytes:
        return bytes(self.asset.address)

    def balance_of(self, holder: Optional[bytes] = None) -> int:
        try:
            bal = self.asset.balance_of(bytes(holder) if holder is not None else self.holder)
        except Exception as e:
            log.warning("balance_of on %s raised %s: %s", self.token.hex(), type(e).__name__, e)
            raise TransferFailed(direction="balance", reason=f"raised:{type(e).__name__}",
                                 details={"token": self.token}) from e
        if isinstance(bal, bool) or not isinstance(bal, int) or bal < 0:
            raise TransferFailed(direction="balance", reason="malformed_balance",
                                 details={"token": self.token})
        return bal

    def transfer_in(self, frm: bytes, to: bytes, amount: int) -> TransferResult:
        return self._call("in", self.asset.transfer_from, self.holder, bytes(frm), bytes(to), amount)

    def transfer_out(self, to: bytes, amount: int) -> TransferResult:
        return self._call("out", self.asset.transfer, self.holder, bytes(to), amount)

    def _call(self, direction: str, fn: Any, *args: Any) -> TransferResult:
        try:
            ret = fn(*args)
        except Exception as e:
            log.warning("transfer_%s on %s raised %s: %s", direction, self.token.hex(), type(e).__name__, e)
            return TransferResult(False, f"raised:{type(e).__name__}")
        res = decode_success(ret)
        if not res.ok:
            log.warning("transfer_%s on %s failed: %s", direction, self.token.hex(), res.reason)
        return res


class AssetRegistry:
    """Token identity -> asset object. The ledger resolves opaque token handles here."""

    def __init__(self, *assets: ExternalAsset) -> None:
        self._assets: Dict[bytes, ExternalAsset] = {}
        for a in assets:
            self.register(a)

    def register(self, asset: ExternalAsset) -> None:
        addr = bytes(asset.address)
        if is_zero(addr):
            raise InvalidToken("token identity must be non-zero")
        if not (callable(getattr(asset, "snapshot", None)) and callable(getattr(asset, "restore", None))):
            raise InvalidToken(
                "asset must support snapshot/restore for atomic rollback", details={"token": addr}
            )
        self._assets[addr] = asset

    def resolve(self, token: Optional[bytes]) -> ExternalAsset:
        if token is None or not isinstance(token, (bytes, bytearray)) or is_zero(bytes(token)):
            raise InvalidToken("token identity must be non-zero")
        asset = self._assets.get(bytes(token))
        if asset is None:
            raise InvalidToken("unknown token", details={"token": bytes(token)})
        return asset

    def gateway(self, token: bytes, holder: bytes) -> AssetGateway:
        return AssetGateway(self.resolve(token), holder)

    def __contains__(self, token: object) -> bool:
        return isinstance(token, (bytes, bytearray)) and bytes(token) in self._assets

    def __iter__(self) -> Iterator[ExternalAsset]:
        return iter(list(self._assets.values()))

    def __len__(self) -> int:
        return len(self._assets)


__all__ = [
    "ExternalAsset",
    "TransferResult",
    "decode_success",
    "AssetGateway",
    "AssetRegistry",
]
