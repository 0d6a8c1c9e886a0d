"""
Executable ledger invariants.

Any regression that breaks these invariants will fail CI.

INVARIANTS TESTED:
1. Sequence ids strictly increase by one from 1 and are never reissued
2. Stored records always satisfy every field bound
3. Failed operations leave no trace (counter, records, grants, journal)
4. Only the current owner may transfer, revoke, append, modify or purge
5. Protocol authority is fixed at initialisation
6. File-backed state survives reopening and keeps numbering, also across
   handles open on the same directory at the same time
"""

import json

import pytest

from agri_ledger.errors import AuthorityMismatchError, ErrorCode, JournalIntegrityError
from agri_ledger.service import ProvenanceLedger, open_ledger
from agri_ledger.settings import Settings
from agri_ledger.validation import (
    valid_location,
    valid_name,
    valid_tag_collection,
    valid_volume,
)


def bounded(record) -> bool:
    return (
        valid_name(record.produce_identifier)
        and valid_volume(record.production_volume)
        and valid_location(record.location_metadata)
        and valid_tag_collection(record.category_descriptors)
    )


class TestLedgerInvariants:
    # ========================================================================
    # INVARIANT 1: Monotonic, never-reused sequence ids
    # ========================================================================

    def test_ids_monotonic_across_mixed_traffic(self, ledger):
        issued = []
        for i in range(6):
            # every other attempt is invalid and must not consume an id
            volume = 0 if i % 2 else 100 + i
            result = ledger.create_agricultural_record("alice", f"Lot {i}", volume, "Farm", ["t"])
            if result.ok:
                issued.append(result.value)
            if i == 2:
                ledger.purge_asset_record("alice", issued[-1]).unwrap()
        assert issued == [1, 2, 3]
        assert len(set(issued)) == len(issued)
        assert ledger.last_sequence_id() == 3

    # ========================================================================
    # INVARIANT 2: Field bounds hold after every operation
    # ========================================================================

    def test_bounds_hold_after_attempted_violations(self, ledger, corn):
        ledger.modify_asset_record("alice", corn, "x" * 65, 5, "Farm", ["t"])
        ledger.modify_asset_record("alice", corn, "Corn", 10**9, "Farm", ["t"])
        ledger.append_asset_metadata("alice", corn, ["t"] * 10)
        ledger.append_asset_metadata("alice", corn, [""])
        assert bounded(ledger.get_record("registry", corn).unwrap())

    # ========================================================================
    # INVARIANT 3: Failed operations are invisible
    # ========================================================================

    @pytest.mark.parametrize(
        "attempt",
        [
            lambda l, sid: l.create_agricultural_record("alice", "", 1, "Farm", ["t"]),
            lambda l, sid: l.transfer_asset_ownership("bob", sid, "bob"),
            lambda l, sid: l.revoke_ledger_access("alice", sid, "alice"),
            lambda l, sid: l.append_asset_metadata("alice", sid, ["t"] * 10),
            lambda l, sid: l.modify_asset_record("alice", sid, "Corn", 0, "Farm", ["t"]),
            lambda l, sid: l.purge_asset_record("bob", sid),
            lambda l, sid: l.activate_emergency_restriction("bob", sid),
        ],
    )
    def test_failure_leaves_state_identical(self, journaled_ledger, attempt):
        sid = journaled_ledger.create_agricultural_record("alice", "Corn", 500, "Farm A", ["organic"]).unwrap()
        before = journaled_ledger.store.snapshot()
        journal_before = len(journaled_ledger.journal)

        assert not attempt(journaled_ledger, sid).ok

        assert journaled_ledger.store.snapshot() == before
        assert len(journaled_ledger.journal) == journal_before

    def test_failed_state_commit_writes_no_journal_entry(self, journaled_ledger, monkeypatch):
        def failing_commit():
            raise OSError("disk full")

        monkeypatch.setattr(journaled_ledger.store, "_commit", failing_commit)
        before = journaled_ledger.store.snapshot()
        with pytest.raises(OSError):
            journaled_ledger.create_agricultural_record("alice", "Corn", 500, "Farm A", ["organic"])
        assert journaled_ledger.store.snapshot() == before
        assert journaled_ledger.last_sequence_id() == 0
        assert len(journaled_ledger.journal) == 0

    def test_rollback_when_journal_tip_is_broken(self, journaled_ledger, tmp_path):
        led = journaled_ledger
        led.create_agricultural_record("alice", "Corn", 500, "Farm A", ["organic"]).unwrap()
        path = tmp_path / "journal.jsonl"
        block = json.loads(path.read_text())
        block["entry"]["caller"] = "mallory"
        path.write_text(json.dumps(block) + "\n")

        before = led.store.snapshot()
        with pytest.raises(JournalIntegrityError):
            led.create_agricultural_record("bob", "Rye", 5, "Farm C", ["grain"])
        assert led.store.snapshot() == before
        assert led.last_sequence_id() == 1

    # ========================================================================
    # INVARIANT 4: Ownership gates every owner-only action
    # ========================================================================

    @pytest.mark.parametrize("caller", ["bob", "registry"])
    def test_only_owner_mutates(self, ledger, corn, caller):
        results = [
            ledger.transfer_asset_ownership(caller, corn, caller),
            ledger.revoke_ledger_access(caller, corn, "alice"),
            ledger.append_asset_metadata(caller, corn, ["x"]),
            ledger.modify_asset_record(caller, corn, "A", 1, "B", ["c"]),
            ledger.purge_asset_record(caller, corn),
        ]
        assert [r.error for r in results] == [ErrorCode.OWNERSHIP_MISMATCH] * 5

    # ========================================================================
    # INVARIANT 5: Fixed protocol authority
    # ========================================================================

    def test_authority_required_for_fresh_ledger(self):
        with pytest.raises(ValueError):
            ProvenanceLedger(authority=None)

    def test_authority_cannot_change_on_reopen(self, tmp_path):
        settings = Settings(STATE_DIR=str(tmp_path), AUTHORITY="registry")
        open_ledger(settings)
        with pytest.raises(AuthorityMismatchError):
            open_ledger(Settings(STATE_DIR=str(tmp_path), AUTHORITY="usurper"))
        reopened = open_ledger(Settings(STATE_DIR=str(tmp_path)))
        assert reopened.authority == "registry"

    # ========================================================================
    # INVARIANT 6: Durable state
    # ========================================================================

    def test_reopen_continues_numbering_and_height(self, tmp_path):
        settings = Settings(STATE_DIR=str(tmp_path), AUTHORITY="registry")
        first = open_ledger(settings)
        sid = first.create_agricultural_record("alice", "Corn", 500, "Farm A", ["organic"]).unwrap()
        first.transfer_asset_ownership("alice", sid, "bob").unwrap()
        assert first.clock.current() == 3

        second = open_ledger(settings)
        assert second.get_record("registry", sid).unwrap().cultivator_address == "bob"
        assert second.create_agricultural_record("bob", "Rye", 5, "Farm C", ["grain"]).value == 2
        assert second.get_record("registry", 2).unwrap().timestamp_height == 3
        assert second.journal.verify()
        assert len(second.journal) == 3

    def test_concurrent_handles_share_one_ledger(self, tmp_path):
        settings = Settings(STATE_DIR=str(tmp_path), AUTHORITY="registry")
        first, second = open_ledger(settings), open_ledger(settings)

        a = first.create_agricultural_record("alice", "Corn", 500, "Farm A", ["organic"]).unwrap()
        b = second.create_agricultural_record("bob", "Rye", 5, "Farm C", ["grain"]).unwrap()
        assert (a, b) == (1, 2)

        assert first.get_record("registry", b).unwrap().cultivator_address == "bob"
        assert second.get_record("registry", a).unwrap().cultivator_address == "alice"
        assert first.get_record("registry", b).unwrap().timestamp_height == 2
        assert first.last_sequence_id() == second.last_sequence_id() == 2
        assert first.current_height() == 3

        assert len(first.journal) == 2
        assert first.journal.verify()
        assert [e["sequence_id"] for e in second.journal.all_entries()] == [1, 2]
