from __future__ import annotations

import pytest

from agri_ledger.clock import HeightClock
from agri_ledger.journal import OperationJournal
from agri_ledger.service import ProvenanceLedger

AUTHORITY = "registry"


@pytest.fixture
def clock():
    return HeightClock(height=10)


@pytest.fixture
def ledger(clock):
    """Fresh in-memory ledger with a fixed protocol authority."""
    return ProvenanceLedger(authority=AUTHORITY, clock=clock)


@pytest.fixture
def journaled_ledger(tmp_path, clock):
    journal = OperationJournal(str(tmp_path / "journal.jsonl"))
    return ProvenanceLedger(authority=AUTHORITY, clock=clock, journal=journal)


@pytest.fixture
def corn(ledger):
    """Sequence id of Alice's corn batch."""
    return ledger.create_agricultural_record("alice", "Corn", 500, "Farm A", ["organic"]).unwrap()
