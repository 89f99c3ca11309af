from __future__ import annotations
"""
custody - conditional custody ledger.

Holds value deposited by a sender and releases it either to the recipient,
against a hash-committed secret revealed before a deadline, or back to the
sender once the deadline has passed. A protocol fee (basis points) is taken on
claims and paid to the administrator.

Public surface:
- EscrowLedger, CallContext, LedgerConfig, CustodyRecord, RecordStatus
- AssetRegistry and the in-memory token variants
- compute_commitment
Submodules (config, errors, events, fees, store, cli, ...) are lazily importable.
"""


import importlib
from typing import List

from .version import __version__

__all__: List[str] = [
    "__version__",
    "EscrowLedger",
    "CallContext",
    "LedgerConfig",
    "CustodyRecord",
    "RecordStatus",
    "AssetRegistry",
    "FungibleToken",
    "BoolToken",
    "VoidToken",
    "FeeOnTransferToken",
    "compute_commitment",
]

_EXPORTS = {
    "EscrowLedger": "ledger",
    "CallContext": "context",
    "LedgerConfig": "config",
    "CustodyRecord": "records",
    "RecordStatus": "records",
    "AssetRegistry": "transfer",
    "FungibleToken": "tokens",
    "BoolToken": "tokens",
    "VoidToken": "tokens",
    "FeeOnTransferToken": "tokens",
    "compute_commitment": "commitment",
}

_lazy_modules = {
    "admin", "cli", "commitment", "config", "context", "errors", "events",
    "fees", "guard", "ledger", "records", "store", "tokens", "transfer",
}


# --- Lazy loader (PEP 562) --------------------------------------------------------

def __getattr__(name: str):
    if name in _EXPORTS:
        return getattr(importlib.import_module(f".{_EXPORTS[name]}", __name__), name)
    if name in _lazy_modules:
        return importlib.import_module(f".{name}", __name__)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__():
    return sorted(set(globals().keys()) | _lazy_modules | set(_EXPORTS))
