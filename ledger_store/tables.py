"""
Ledger tables built on the key-value substrate.

- SequenceAllocator: "meta" namespace, key "sequence"
- AssetLedger: "records" namespace, key str(sequence_id)
- AccessMatrix: "grants" namespace, key canonical JSON of [sequence_id, accessor]

None of these take locks themselves; callers run them inside
KeyValueStore.transaction().
"""

from __future__ import annotations

import json

from agri_ledger.errors import DuplicateResource, ResourceNotFound
from agri_ledger.models import AssetRecord

from .kv import KeyValueStore

META = "meta"
RECORDS = "records"
GRANTS = "grants"


class SequenceAllocator:
    """Monotonic record identifiers starting at 1, never reused."""

    def __init__(self, store: KeyValueStore):
        self._store = store

    def current(self) -> int:
        """Last committed identifier (0 before the first creation)."""
        return int(self._store.namespace(META).get("sequence", 0))

    def next(self) -> int:
        """Identifier the next creation will use. Does not advance the counter."""
        return self.current() + 1

    def commit(self, value: int) -> None:
        expected = self.next()
        if value != expected:
            raise RuntimeError(f"sequence commit out of order: got {value}, expected {expected}")
        self._store.namespace(META)["sequence"] = value


class AssetLedger:
    def __init__(self, store: KeyValueStore):
        self._store = store

    def _rows(self) -> dict:
        return self._store.namespace(RECORDS)

    def exists(self, sequence_id: int) -> bool:
        return str(sequence_id) in self._rows()

    def insert(self, sequence_id: int, record: AssetRecord) -> None:
        if self.exists(sequence_id):
            raise DuplicateResource(f"record {sequence_id} already exists")
        self._rows()[str(sequence_id)] = record.to_storage()

    def get(self, sequence_id: int) -> AssetRecord:
        row = self._rows().get(str(sequence_id))
        if row is None:
            raise ResourceNotFound(f"record {sequence_id} not found")
        return AssetRecord.model_validate(row)

    def replace(self, sequence_id: int, record: AssetRecord) -> None:
        if not self.exists(sequence_id):
            raise ResourceNotFound(f"record {sequence_id} not found")
        self._rows()[str(sequence_id)] = record.to_storage()

    def remove(self, sequence_id: int) -> None:
        if not self.exists(sequence_id):
            raise ResourceNotFound(f"record {sequence_id} not found")
        del self._rows()[str(sequence_id)]


class AccessMatrix:
    """(sequence_id, accessor) -> bool. A missing entry reads as False."""

    def __init__(self, store: KeyValueStore):
        self._store = store

    @staticmethod
    def _key(sequence_id: int, accessor: str) -> str:
        return json.dumps([sequence_id, accessor], separators=(",", ":"))

    def grant(self, sequence_id: int, accessor: str, value: bool = True) -> None:
        self._store.namespace(GRANTS)[self._key(sequence_id, accessor)] = bool(value)

    def check(self, sequence_id: int, accessor: str) -> bool:
        return bool(self._store.namespace(GRANTS).get(self._key(sequence_id, accessor), False))

    def revoke(self, sequence_id: int, accessor: str) -> None:
        self._store.namespace(GRANTS).pop(self._key(sequence_id, accessor), None)
