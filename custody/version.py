"""
custody.version

Resolution order:
1. CUSTODY_VERSION from the environment (release pipelines stamp builds this way)
2. the installed `custody-ledger` distribution metadata
3. BASE_VERSION for source checkouts that were never installed
"""

from __future__ import annotations

import os
from importlib import metadata

BASE_VERSION = "0.1.0"
DIST_NAME = "custody-ledger"


def build_version() -> str:
    v = os.getenv("CUSTODY_VERSION", "").strip()
    if v:
        return v
    try:
        return metadata.version(DIST_NAME)
    except metadata.PackageNotFoundError:
        return BASE_VERSION


__version__ = build_version()


def get_version() -> str:
    return __version__


__all__ = ["__version__", "get_version", "BASE_VERSION"]
