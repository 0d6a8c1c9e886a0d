"""
Height sources.

The ledger never derives time itself: it asks a clock for the current height
and stamps records with it. Heights are monotonically non-decreasing.
"""

from __future__ import annotations

from ledger_store.kv import KeyValueStore
from ledger_store.tables import META


class HeightClock:
    """In-memory height, advanced explicitly by the caller."""

    def __init__(self, height: int = 1):
        if height < 0:
            raise ValueError("height must be non-negative")
        self._height = height

    def current(self) -> int:
        return self._height

    def advance(self, by: int = 1) -> int:
        if by < 0:
            raise ValueError("height never decreases")
        self._height += by
        return self._height


class StoreHeightClock(HeightClock):
    """
    Height persisted in the store's meta namespace.

    Advancing inside an operation's transaction makes the height move
    together with the state it stamps.
    """

    def __init__(self, store: KeyValueStore, start: int = 1):
        self._store = store
        self._start = start

    def current(self) -> int:
        return int(self._store.namespace(META).get("height", self._start))

    def advance(self, by: int = 1) -> int:
        if by < 0:
            raise ValueError("height never decreases")
        with self._store.transaction():
            height = self.current() + by
            self._store.namespace(META)["height"] = height
        return height
