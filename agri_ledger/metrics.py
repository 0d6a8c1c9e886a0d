"""
Operation outcome metrics.

Counts committed and rejected operations per action and per error kind, and
tracks the last issued sequence id and the current height. No identities or
record contents are recorded.

`Metrics` lives in process memory. `StoreMetrics` keeps the same figures in
the ledger store, so every process sharing a state file (CLI, REST workers,
the observability API) reports the same numbers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict

from agri_ledger.authz import Action
from agri_ledger.errors import ErrorCode
from ledger_store.kv import KeyValueStore

METRICS = "metrics"


@dataclass
class Metrics:
    counters: Dict[str, int] = field(default_factory=dict)
    gauges: Dict[str, float] = field(default_factory=dict)

    def committed(self, action: Action) -> None:
        self._bump({f"{action.value}.committed": 1})

    def rejected(self, action: Action, code: ErrorCode) -> None:
        self._bump({f"{action.value}.rejected": 1, f"error.{code.label}": 1})

    def ledger_position(self, last_sequence: int, height: int) -> None:
        """Record where the ledger stands after a commit."""
        self._set({"sequence.last": float(last_sequence), "height.current": float(height)})

    def _bump(self, deltas: Dict[str, int]) -> None:
        for name, by in deltas.items():
            self.counters[name] = self.counters.get(name, 0) + by

    def _set(self, values: Dict[str, float]) -> None:
        self.gauges.update(values)

    def snapshot(self) -> dict:
        return {
            "counters": dict(self.counters),
            "gauges": dict(self.gauges),
        }


class StoreMetrics(Metrics):
    """Metrics kept in the store's `metrics` namespace, one transaction per update."""

    def __init__(self, store: KeyValueStore):
        super().__init__()
        self._store = store

    def _table(self) -> dict:
        table = self._store.namespace(METRICS)
        table.setdefault("counters", {})
        table.setdefault("gauges", {})
        return table

    def _bump(self, deltas: Dict[str, int]) -> None:
        with self._store.transaction():
            counters = self._table()["counters"]
            for name, by in deltas.items():
                counters[name] = counters.get(name, 0) + by

    def _set(self, values: Dict[str, float]) -> None:
        with self._store.transaction():
            self._table()["gauges"].update(values)

    def snapshot(self) -> dict:
        with self._store.transaction():
            table = self._store.namespace(METRICS)
            return {
                "counters": dict(table.get("counters", {})),
                "gauges": dict(table.get("gauges", {})),
            }
