"""
Custody record table: append-only, integer-keyed, never compacted.

Identifiers start at 1 and only grow. A stored record is replaced by its
terminal successor exactly once; nothing is ever deleted, so the table is a
complete audit history of every deposit.

Snapshots are plain JSON-compatible dicts (bytes as 0x-hex). `save_snapshot`
writes atomically (temp file + os.replace) for crash safety.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterator, List, Tuple

from .errors import AlreadyTerminal, RecordNotFound
from .records import CustodyRecord, RecordId

SNAPSHOT_VERSION = 1


class RecordTable:
    def __init__(self) -> None:
        self._rows: Dict[RecordId, CustodyRecord] = {}
        self._next_id: RecordId = 1

    @property
    def next_id(self) -> RecordId:
        return self._next_id

    def allocate(self) -> RecordId:
        rid = self._next_id
        self._next_id += 1
        return rid

    def insert(self, record: CustodyRecord) -> None:
        rid = record.record_id
        if rid in self._rows:
            raise ValueError(f"record {rid} already exists")
        if rid <= 0 or rid >= self._next_id:
            raise ValueError(f"record id {rid} was not allocated")
        self._rows[rid] = record

    def get(self, record_id: Any) -> CustodyRecord:
        if isinstance(record_id, bool) or not isinstance(record_id, int):
            raise RecordNotFound(record_id=repr(record_id))
        rec = self._rows.get(record_id)
        if rec is None or rec.amount_received <= 0:
            raise RecordNotFound(record_id=record_id)
        return rec

    def finalize(self, record: CustodyRecord) -> None:
        """Store the terminal successor of an ACTIVE record."""
        current = self.get(record.record_id)
        if current.is_terminal:
            raise AlreadyTerminal(record_id=record.record_id, status=current.status.value)
        if not record.is_terminal:
            raise ValueError(f"record {record.record_id} successor is not terminal")
        self._rows[record.record_id] = record

    def __iter__(self) -> Iterator[CustodyRecord]:
        return iter([self._rows[k] for k in sorted(self._rows)])

    def __len__(self) -> int:
        return len(self._rows)

    # --- checkpointing ------------------------------------------------------

    def snapshot(self) -> Tuple[Dict[RecordId, CustodyRecord], RecordId]:
        return dict(self._rows), self._next_id

    def restore(self, state: Tuple[Dict[RecordId, CustodyRecord], RecordId]) -> None:
        rows, next_id = state
        self._rows = dict(rows)
        self._next_id = next_id

    # --- serialization ------------------------------------------------------

    def dump(self) -> List[Dict[str, Any]]:
        return [r.to_dict() for r in self]

    @classmethod
    def load(cls, rows: List[Dict[str, Any]], next_id: RecordId) -> "RecordTable":
        table = cls()
        recs = [CustodyRecord.from_dict(d) for d in rows]
        top = max((r.record_id for r in recs), default=0)
        if next_id <= top:
            raise ValueError(f"next_id {next_id} must exceed highest stored id {top}")
        table._next_id = next_id
        for r in recs:
            table.insert(r)
        return table


def save_snapshot(path: str | os.PathLike[str], data: Dict[str, Any]) -> Path:
    """Atomically write a ledger snapshot as JSON."""
    dest = Path(path)
    dest.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(data, indent=2, sort_keys=True).encode("utf-8")
    fd, tmp_path = tempfile.mkstemp(dir=str(dest.parent), suffix=".tmp", prefix=".custody_")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(payload)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, dest)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    return dest


def load_snapshot(path: str | os.PathLike[str]) -> Dict[str, Any]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"snapshot {path} must be a JSON object")
    version = data.get("version")
    if version != SNAPSHOT_VERSION:
        raise ValueError(f"unsupported snapshot version {version!r}")
    return data


__all__ = ["SNAPSHOT_VERSION", "RecordTable", "save_snapshot", "load_snapshot"]
