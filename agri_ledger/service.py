"""
Provenance ledger operations.

ProvenanceLedger is the public surface: eight actions over the sequence
allocator, asset ledger and access matrix. Each action:

1. runs inside one store transaction (all effects commit or none do)
2. checks existence, then authorization, then lock state, then inputs
3. returns an OperationResult; LedgerError never escapes the boundary

Committed mutating actions are appended to the operation journal (when one is
configured). The block is sealed inside the transaction, so a broken journal
tip rolls the state back, and written only after the state has been
persisted, so a failed state commit never leaves a journal entry behind.

Usage:
    ledger = ProvenanceLedger(authority="registry")
    sid = ledger.create_agricultural_record("alice", "Corn", 500, "Farm A", ["organic"]).unwrap()
    report = ledger.verify_asset_authenticity("alice", sid, "alice").unwrap()
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from agri_ledger.authz import Action, authorize, ensure_unlocked
from agri_ledger.clock import HeightClock, StoreHeightClock
from agri_ledger.errors import (
    AuthorityMismatchError,
    AuthorityRequired,
    LedgerError,
    MetadataFormatError,
)
from agri_ledger.hashing import h_record
from agri_ledger.journal import OperationJournal
from agri_ledger.metrics import Metrics, StoreMetrics
from agri_ledger.models import (
    AssetRecord,
    AuthenticityReport,
    OperationJournalEntry,
    OperationResult,
)
from agri_ledger.settings import Settings
from agri_ledger.validation import MAX_TAGS, check_record_fields, check_tags
from ledger_store.kv import JsonFileStore, KeyValueStore
from ledger_store.tables import META, AccessMatrix, AssetLedger, SequenceAllocator

logger = logging.getLogger(__name__)


class ProvenanceLedger:
    def __init__(
        self,
        authority: Optional[str] = None,
        store: Optional[KeyValueStore] = None,
        clock: Optional[HeightClock] = None,
        journal: Optional[OperationJournal] = None,
        metrics: Optional[Metrics] = None,
        advance_height: bool = False,
    ):
        """
        Args:
            authority: Protocol authority identity. Required for a fresh store;
                for a persisted store it must match (or be omitted).
            store: Backing key-value store (in-memory by default)
            clock: Height source (in-memory, starting at 1, by default)
            journal: Optional hash-chained audit journal
            metrics: Outcome counters
            advance_height: Advance the clock by one after each committed
                mutating action (one action per height)
        """
        self.store = store if store is not None else KeyValueStore()
        self.clock = clock if clock is not None else HeightClock()
        self.journal = journal
        self.metrics = metrics if metrics is not None else Metrics()
        self.advance_height = advance_height

        self.sequence = SequenceAllocator(self.store)
        self.assets = AssetLedger(self.store)
        self.access = AccessMatrix(self.store)
        self.authority = self._bind_authority(authority)

    def _bind_authority(self, authority: Optional[str]) -> str:
        with self.store.transaction():
            meta = self.store.namespace(META)
            persisted = meta.get("authority")
            if persisted is None:
                if not authority:
                    raise ValueError("protocol authority must be set when initialising a ledger")
                meta["authority"] = authority
                logger.info(f"Ledger initialised with protocol authority {authority!r}")
                return authority
            if authority and authority != persisted:
                raise AuthorityMismatchError(
                    f"ledger authority is fixed at {persisted!r}; refusing {authority!r}"
                )
            return persisted

    # ------------------------------------------------------------------
    # Operation boundary
    # ------------------------------------------------------------------

    def _execute(
        self,
        action: Action,
        caller: str,
        body: Callable[[], Any],
        sequence_id: Optional[int] = None,
        detail: Optional[Dict[str, Any]] = None,
    ) -> OperationResult:
        try:
            with self.store.transaction():
                height = self.clock.current()
                value = body()
                if action.mutates:
                    sid = sequence_id if sequence_id is not None else value
                    self._journal(action, caller, sid, height, dict(detail or {}))
                    if self.advance_height:
                        self.clock.advance()
        except LedgerError as err:
            logger.warning(f"{action.value} rejected for {caller!r}: {err.code.label} ({err.message})")
            self.metrics.rejected(action, err.code)
            return OperationResult.failure(err)

        logger.info(f"{action.value} committed by {caller!r} (sequence {sequence_id or value})")
        self.metrics.committed(action)
        if action.mutates:
            self.metrics.ledger_position(self.last_sequence_id(), self.current_height())
        return OperationResult.success(value)

    def _journal(self, action: Action, caller: str, sid: int, height: int, detail: Dict[str, Any]) -> None:
        if self.journal is None:
            return
        if self.assets.exists(sid):
            detail["record_hash"] = h_record(self.assets.get(sid).to_storage())
        block = self.journal.seal(
            OperationJournalEntry(
                operation=action.value,
                caller=caller,
                sequence_id=sid,
                height=height,
                detail=detail,
            )
        )
        journal = self.journal
        self.store.after_commit(lambda: journal.write(block))

    def _authorize(self, action: Action, sequence_id: int, record: AssetRecord, caller: str) -> None:
        granted = self.access.check(sequence_id, caller) if action is Action.VERIFY else False
        authorize(action, record, caller, authority=self.authority, granted=granted)
        ensure_unlocked(action, record)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def create_agricultural_record(
        self,
        caller: str,
        name: str,
        volume: int,
        location: str,
        tags: Sequence[str],
    ) -> OperationResult:
        """Register a produce batch owned by `caller`. Succeeds with the new sequence id."""
        def body() -> int:
            check_record_fields(name, volume, location, tags)
            sid = self.sequence.next()
            record = AssetRecord(
                produce_identifier=name,
                cultivator_address=caller,
                production_volume=volume,
                timestamp_height=self.clock.current(),
                location_metadata=location,
                category_descriptors=list(tags),
            )
            self.assets.insert(sid, record)
            self.access.grant(sid, caller, True)
            self.sequence.commit(sid)
            return sid

        return self._execute(Action.CREATE, caller, body)

    def verify_asset_authenticity(
        self, caller: str, sequence_id: int, expected_cultivator: str
    ) -> OperationResult:
        """
        Check whether `expected_cultivator` owns the record.

        A mismatch is a successful answer (isAuthentic false), not a failure.
        Only a missing record or a caller without owner/grant/authority
        standing fails.
        """
        def body() -> AuthenticityReport:
            record = self.assets.get(sequence_id)
            self._authorize(Action.VERIFY, sequence_id, record, caller)
            height = self.clock.current()
            match = record.cultivator_address == expected_cultivator
            return AuthenticityReport(
                is_authentic=match,
                current_height=height,
                age=height - record.timestamp_height,
                farmer_match=match,
            )

        return self._execute(Action.VERIFY, caller, body, sequence_id)

    def transfer_asset_ownership(self, caller: str, sequence_id: int, recipient: str) -> OperationResult:
        def body() -> bool:
            record = self.assets.get(sequence_id)
            self._authorize(Action.TRANSFER, sequence_id, record, caller)
            self.assets.replace(
                sequence_id, record.model_copy(update={"cultivator_address": recipient})
            )
            return True

        return self._execute(
            Action.TRANSFER, caller, body, sequence_id, {"recipient": recipient}
        )

    def revoke_ledger_access(self, caller: str, sequence_id: int, target: str) -> OperationResult:
        def body() -> bool:
            record = self.assets.get(sequence_id)
            self._authorize(Action.REVOKE, sequence_id, record, caller)
            if target == caller:
                raise AuthorityRequired("owners cannot revoke their own access")
            self.access.revoke(sequence_id, target)
            return True

        return self._execute(Action.REVOKE, caller, body, sequence_id, {"target": target})

    def append_asset_metadata(self, caller: str, sequence_id: int, tags: Sequence[str]) -> OperationResult:
        """Append tags to the record's category descriptors. Succeeds with the merged list."""
        def body() -> List[str]:
            record = self.assets.get(sequence_id)
            self._authorize(Action.APPEND_METADATA, sequence_id, record, caller)
            check_tags(tags)
            merged = record.category_descriptors + list(tags)
            if len(merged) > MAX_TAGS:
                raise MetadataFormatError(
                    f"merged tag collection would hold {len(merged)} tags (max {MAX_TAGS})"
                )
            self.assets.replace(
                sequence_id, record.model_copy(update={"category_descriptors": merged})
            )
            return merged

        return self._execute(Action.APPEND_METADATA, caller, body, sequence_id)

    def modify_asset_record(
        self,
        caller: str,
        sequence_id: int,
        name: str,
        volume: int,
        location: str,
        tags: Sequence[str],
    ) -> OperationResult:
        """Overwrite the descriptive fields. Owner and timestamp height are untouched."""
        def body() -> bool:
            record = self.assets.get(sequence_id)
            self._authorize(Action.MODIFY, sequence_id, record, caller)
            check_record_fields(name, volume, location, tags)
            self.assets.replace(
                sequence_id,
                record.model_copy(update={
                    "produce_identifier": name,
                    "production_volume": volume,
                    "location_metadata": location,
                    "category_descriptors": list(tags),
                }),
            )
            return True

        return self._execute(Action.MODIFY, caller, body, sequence_id)

    def purge_asset_record(self, caller: str, sequence_id: int) -> OperationResult:
        """Delete the record. Its access grants are left in place."""
        def body() -> bool:
            record = self.assets.get(sequence_id)
            self._authorize(Action.PURGE, sequence_id, record, caller)
            self.assets.remove(sequence_id)
            return True

        return self._execute(Action.PURGE, caller, body, sequence_id, {"purged": True})

    def activate_emergency_restriction(self, caller: str, sequence_id: int) -> OperationResult:
        """
        Lock the record against transfer, metadata append, modification and purge.

        Allowed for the owner and the protocol authority. Idempotent.
        """
        def body() -> bool:
            record = self.assets.get(sequence_id)
            self._authorize(Action.EMERGENCY_RESTRICT, sequence_id, record, caller)
            if not record.locked:
                self.assets.replace(sequence_id, record.model_copy(update={"locked": True}))
            return True

        return self._execute(Action.EMERGENCY_RESTRICT, caller, body, sequence_id)

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    def get_record(self, caller: str, sequence_id: int) -> OperationResult:
        """Full record for a caller with verify standing (owner, grantee or authority)."""
        try:
            with self.store.transaction():
                record = self.assets.get(sequence_id)
                self._authorize(Action.VERIFY, sequence_id, record, caller)
                return OperationResult.success(record)
        except LedgerError as err:
            return OperationResult.failure(err)

    def has_access(self, sequence_id: int, identity: str) -> bool:
        with self.store.transaction():
            return self.access.check(sequence_id, identity)

    def last_sequence_id(self) -> int:
        with self.store.transaction():
            return self.sequence.current()

    def current_height(self) -> int:
        with self.store.transaction():
            return self.clock.current()


def open_ledger(settings: Settings, metrics: Optional[Metrics] = None) -> ProvenanceLedger:
    """
    Open (or initialise) the file-backed ledger under settings.STATE_DIR.

    State, sequence counter, height, authority and metrics live in one JSON
    document; the journal is a sibling JSONL file. Any number of handles may
    be open on the same directory at once.
    """
    store = JsonFileStore(settings.state_path)
    journal = OperationJournal(settings.journal_path) if settings.JOURNAL_ENABLED else None
    return ProvenanceLedger(
        authority=settings.AUTHORITY,
        store=store,
        clock=StoreHeightClock(store),
        journal=journal,
        metrics=metrics if metrics is not None else StoreMetrics(store),
        advance_height=True,
    )
