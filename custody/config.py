from __future__ import annotations
"""
custody.config: configuration for the custody ledger

Covers:
- Minimum lock window between deposit and deadline (seconds)
- Initial protocol fee (basis points, 10_000 = 100%)
- Native integer width used for checked fee arithmetic
- Identity length and the commitment binding scheme
- Log level used by the CLI

Environment overrides (all optional; sensible defaults provided):

  CUSTODY_MIN_LOCK_SECONDS=60
  CUSTODY_FEE_BPS=0
  CUSTODY_WORD_BITS=256
  CUSTODY_ADDRESS_LEN=32
  CUSTODY_COMMITMENT_SCHEME=recipient        # or recipient+id
  CUSTODY_LOG_LEVEL=INFO

You can also load from a JSON or YAML file via `CUSTODY_CONFIG_FILE=/path/to/config.(json|yaml|yml)`.
File values override defaults; environment overrides the file.
"""


from dataclasses import dataclass, asdict, replace
from typing import Any, Dict, Mapping, Optional
import json
import os
from pathlib import Path

import yaml


BPS_DENOMINATOR = 10_000

SCHEME_RECIPIENT = "recipient"
SCHEME_RECIPIENT_ID = "recipient+id"
COMMITMENT_SCHEMES = (SCHEME_RECIPIENT, SCHEME_RECIPIENT_ID)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class LedgerConfig:
    """Top-level configuration container."""
    min_lock_seconds: int = 60
    fee_bps: int = 0
    word_bits: int = 256
    address_len: int = 32
    commitment_scheme: str = SCHEME_RECIPIENT
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        self.validate()

    @property
    def word_max(self) -> int:
        return (1 << self.word_bits) - 1

    @property
    def binds_record_id(self) -> bool:
        return self.commitment_scheme == SCHEME_RECIPIENT_ID

    def validate(self) -> None:
        if self.min_lock_seconds < 0:
            raise ValueError(f"min_lock_seconds must be non-negative (got {self.min_lock_seconds}).")
        if not (0 <= self.fee_bps <= BPS_DENOMINATOR):
            raise ValueError(f"fee_bps must be between 0 and {BPS_DENOMINATOR} (got {self.fee_bps}).")
        if self.word_bits < 8 or self.word_bits > 1024 or self.word_bits % 8:
            raise ValueError(f"word_bits must be a multiple of 8 in [8, 1024] (got {self.word_bits}).")
        if not (1 <= self.address_len <= 64):
            raise ValueError(f"address_len must be in [1, 64] (got {self.address_len}).")
        if self.commitment_scheme not in COMMITMENT_SCHEMES:
            raise ValueError(
                f"commitment_scheme must be one of {COMMITMENT_SCHEMES} (got {self.commitment_scheme!r})."
            )
        if self.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {_LOG_LEVELS} (got {self.log_level!r}).")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# -------------------------- Loaders --------------------------


def _getenv_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(str(v).replace("_", ""), 0)
    except Exception as e:
        raise ValueError(f"Invalid int for {name}: {v!r}") from e


def _getenv_bps(name: str, default: int) -> int:
    bps = _getenv_int(name, default)
    if not (0 <= bps <= BPS_DENOMINATOR):
        raise ValueError(f"{name} must be between 0 and {BPS_DENOMINATOR} bps (got {bps}).")
    return bps


def _getenv_str(name: str, default: str) -> str:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    return v.strip()


def from_env(base: Optional[LedgerConfig] = None, prefix: str = "CUSTODY_") -> LedgerConfig:
    """
    Build a LedgerConfig from environment variables, optionally layering on top of `base`.
    """
    cfg = base or LedgerConfig()
    return LedgerConfig(
        min_lock_seconds=_getenv_int(f"{prefix}MIN_LOCK_SECONDS", cfg.min_lock_seconds),
        fee_bps=_getenv_bps(f"{prefix}FEE_BPS", cfg.fee_bps),
        word_bits=_getenv_int(f"{prefix}WORD_BITS", cfg.word_bits),
        address_len=_getenv_int(f"{prefix}ADDRESS_LEN", cfg.address_len),
        commitment_scheme=_getenv_str(f"{prefix}COMMITMENT_SCHEME", cfg.commitment_scheme).lower(),
        log_level=_getenv_str(f"{prefix}LOG_LEVEL", cfg.log_level).upper(),
    )


def from_mapping(data: Mapping[str, Any], base: Optional[LedgerConfig] = None) -> LedgerConfig:
    cfg = base or LedgerConfig()
    known = set(cfg.to_dict())
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown config keys: {', '.join(unknown)}")
    return replace(cfg, **dict(data))


def from_file(path: str | os.PathLike[str]) -> LedgerConfig:
    """
    Load configuration from a JSON or YAML file.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(p)

    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text or "{}")
    if not isinstance(data, Mapping):
        raise ValueError(f"config file {p} must contain a mapping at the top level")

    # Accept either a flat mapping or one nested under "custody".
    section = data.get("custody", data)
    return from_mapping(section)


def load_config(path: Optional[str | os.PathLike[str]] = None) -> LedgerConfig:
    """
    File (explicit `path` or CUSTODY_CONFIG_FILE) first, then environment on top.
    """
    file_path = path or os.getenv("CUSTODY_CONFIG_FILE")
    base = from_file(file_path) if file_path else LedgerConfig()
    return from_env(base)


__all__ = [
    "BPS_DENOMINATOR",
    "SCHEME_RECIPIENT",
    "SCHEME_RECIPIENT_ID",
    "COMMITMENT_SCHEMES",
    "LedgerConfig",
    "from_env",
    "from_mapping",
    "from_file",
    "load_config",
]
