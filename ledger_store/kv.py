"""
Key-value substrate for the ledger tables.

State is a mapping of namespace -> {key: JSON value}. Every public ledger
operation runs inside `transaction()`, which is the single serialization
point: it holds a process-wide lock, snapshots the state on entry and either
commits or restores the snapshot when the body raises.

Callbacks registered with `after_commit()` run once the outermost
transaction has committed, still inside the serialization point. They are
dropped on rollback.

Tables must look their namespace up through `namespace()` on every access;
a rollback replaces the namespace dicts.
"""

from __future__ import annotations

import copy
import fcntl
import json
import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from agri_ledger import MIN_SCHEMA_VERSION, SUPPORTED_SCHEMAS, __schema__
from agri_ledger.errors import SchemaDowngradeError

logger = logging.getLogger(__name__)

State = Dict[str, Dict[str, Any]]

_LOCK_SUFFIX = ".lock"


class KeyValueStore:
    """In-memory namespaced store with snapshot transactions."""

    def __init__(self, data: Optional[State] = None):
        self._data: State = data if data is not None else {}
        self._lock = threading.RLock()
        self._depth = 0
        self._pending: List[Callable[[], None]] = []

    def namespace(self, name: str) -> Dict[str, Any]:
        return self._data.setdefault(name, {})

    def snapshot(self) -> State:
        """Deep copy of the current state (for inspection and tests)."""
        with self.transaction():
            return copy.deepcopy(self._data)

    def after_commit(self, callback: Callable[[], None]) -> None:
        """Run `callback` after the enclosing transaction commits."""
        if not self._depth:
            raise RuntimeError("after_commit() needs an open transaction")
        self._pending.append(callback)

    @contextmanager
    def transaction(self) -> Iterator[KeyValueStore]:
        with self._lock:
            if self._depth:
                # nested: the outermost transaction owns commit/rollback
                yield self
                return

            with self._exclusive():
                self._refresh()
                before = copy.deepcopy(self._data)
                self._pending = []
                self._depth += 1
                try:
                    yield self
                    if self._data != before:
                        self._commit()
                except BaseException:
                    self._data = before
                    self._pending = []
                    raise
                finally:
                    self._depth -= 1

                callbacks, self._pending = self._pending, []
                for callback in callbacks:
                    callback()

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        """Cross-process exclusion. One process owns an in-memory store."""
        yield

    def _refresh(self) -> None:
        """Reload state written by other handles. Nothing to do in memory."""
        pass

    def _commit(self) -> None:
        """Persist committed state. In-memory stores have nothing to do."""
        pass


class JsonFileStore(KeyValueStore):
    """
    KeyValueStore persisted as one canonical JSON document.

    File layout:
      {"schema": "agri-ledger/v1", "namespaces": {...}}

    Several handles (processes, CLI invocations, API workers) may share one
    file. Each transaction takes an exclusive flock on a `.lock` sidecar and
    reloads the document before running, so no handle works from a stale
    copy.

    Commits write a temp file beside the target and `os.replace` it, so a
    reader never observes a half-written state.
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.lock_path = self.path.with_name(self.path.name + _LOCK_SUFFIX)
        super().__init__(self._load())
        logger.debug(f"JsonFileStore opened: {self.path}")

    def _load(self) -> State:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            doc = json.load(f)

        schema = doc.get("schema")
        if schema not in SUPPORTED_SCHEMAS:
            raise SchemaDowngradeError(
                f"Unsupported schema '{schema}'. Supported: {SUPPORTED_SCHEMAS}"
            )
        if schema < MIN_SCHEMA_VERSION:
            raise SchemaDowngradeError(
                f"Schema '{schema}' older than minimum required '{MIN_SCHEMA_VERSION}'"
            )
        return doc.get("namespaces", {})

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        with open(self.lock_path, "a+", encoding="utf-8") as handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def _refresh(self) -> None:
        self._data = self._load()

    def _commit(self) -> None:
        doc = {"schema": __schema__, "namespaces": self._data}
        tmp = self.path.with_name(self.path.name + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(doc, f, sort_keys=True, separators=(",", ":"))
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, self.path)
