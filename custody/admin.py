# -*- coding: utf-8 -*-
"""
custody.admin
=============

Single-writer administration role for the custody ledger.

Surface:
- read the current administrator (`current_admin`)
- check that a caller is the administrator (`require_admin`)
- hand the role to another identity (`transfer_administration`)
- give the role up for good (`renounce_administration`)

The administrator is the only identity allowed to change the protocol fee and
is the beneficiary of fees taken on claims.

Events:
    - "AdministrationTransferred" args: {"previous": bytes, "new": bytes}

Safety notes
------------
- `transfer_administration` rejects an empty or all-zero identity; use
  `renounce_administration` explicitly to leave the ledger without an admin.
- After renouncing nothing can set a new administrator again.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from .errors import NotAdmin, ZeroIdentity
from .events import EV_ADMIN_TRANSFERRED, EventSink
from .records import is_zero

log = logging.getLogger(__name__)


class Administration:
    def __init__(self, initial: Optional[bytes], events: EventSink) -> None:
        if initial is not None and is_zero(bytes(initial)):
            initial = None
        self._admin: Optional[bytes] = bytes(initial) if initial is not None else None
        self._events = events

    def current_admin(self) -> Optional[bytes]:
        """Return the current administrator, or None once renounced."""
        return self._admin

    def require_admin(self, caller: bytes) -> None:
        if self._admin is None or bytes(caller) != self._admin:
            raise NotAdmin("caller is not the administrator", details={"caller": bytes(caller)})

    def transfer_administration(self, caller: bytes, new_admin: bytes) -> None:
        """
        Admin-only: hand the role to `new_admin` (must be non-zero).

        Emits "AdministrationTransferred" with {"previous": <old>, "new": <new_admin>}.
        """
        self.require_admin(caller)
        if new_admin is None or is_zero(bytes(new_admin)):
            raise ZeroIdentity("new administrator must be a non-zero identity")

        previous = self._admin or b""
        self._admin = bytes(new_admin)
        self._events.emit(EV_ADMIN_TRANSFERRED, {"previous": previous, "new": self._admin})
        log.info("administration transferred %s -> %s", previous.hex(), self._admin.hex())

    def renounce_administration(self, caller: bytes) -> None:
        """
        Admin-only: clear the administrator.

        Emits "AdministrationTransferred" with {"previous": <old>, "new": b""}.
        """
        self.require_admin(caller)
        previous = self._admin or b""
        self._admin = None
        self._events.emit(EV_ADMIN_TRANSFERRED, {"previous": previous, "new": b""})
        log.info("administration renounced by %s", previous.hex())

    # --- checkpointing (used by the ledger's atomic scope) -------------------

    def snapshot(self) -> Any:
        return self._admin

    def restore(self, state: Any) -> None:
        self._admin = state


__all__ = ["Administration"]
