from __future__ import annotations

import json
import os
from typing import Any, Dict, List

from agri_ledger import MIN_SCHEMA_VERSION, SUPPORTED_SCHEMAS
from agri_ledger.errors import JournalIntegrityError, SchemaDowngradeError

from .hashing import genesis_hash, h_block
from .models import OperationJournalEntry


class OperationJournal:
    """
    Append-only audit trail of committed ledger operations.

    - Hash-chained blocks (tamper evident)
    - One block per committed mutating operation
    Block schema:
      {
        "prev_hash": "...",
        "entry": {...OperationJournalEntry...},
        "block_hash": "..."
      }
    """
    def __init__(self, path: str):
        self.path = path
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        if not os.path.exists(path):
            open(path, "wb").close()

    def _read_blocks(self) -> List[Dict[str, Any]]:
        blocks = []
        with open(self.path, "rb") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                blocks.append(json.loads(line))
        return blocks

    def tip_hash(self) -> str:
        blocks = self._read_blocks()
        return blocks[-1]["block_hash"] if blocks else genesis_hash()

    def __len__(self) -> int:
        return len(self._read_blocks())

    def seal(self, entry: OperationJournalEntry) -> Dict[str, Any]:
        """Build the block that would extend the current tip, without writing it."""
        payload = entry.model_dump(mode="json", by_alias=True)

        # Schema validation: prevent downgrade attacks
        schema = payload.get("schema")
        if schema not in SUPPORTED_SCHEMAS:
            raise SchemaDowngradeError(
                f"Unsupported schema '{schema}'. Supported: {SUPPORTED_SCHEMAS}"
            )
        if schema < MIN_SCHEMA_VERSION:
            raise SchemaDowngradeError(
                f"Schema '{schema}' older than minimum required '{MIN_SCHEMA_VERSION}'"
            )

        blocks = self._read_blocks()
        if blocks:
            last = blocks[-1]
            recomputed = h_block({"prev_hash": last["prev_hash"], "entry": last["entry"]})
            if recomputed != last["block_hash"]:
                raise JournalIntegrityError("journal tip does not match its hash; refusing to extend")
            prev = last["block_hash"]
        else:
            prev = genesis_hash()

        block_header = {"prev_hash": prev, "entry": payload}
        return {**block_header, "block_hash": h_block(block_header)}

    def write(self, block: Dict[str, Any]) -> Dict[str, Any]:
        if block["prev_hash"] != self.tip_hash():
            raise JournalIntegrityError("journal tip moved since the block was sealed")
        with open(self.path, "ab") as f:
            f.write(json.dumps(block, sort_keys=True, separators=(",", ":")).encode("utf-8") + b"\n")
        return block

    def append(self, entry: OperationJournalEntry) -> Dict[str, Any]:
        return self.write(self.seal(entry))

    def verify(self) -> bool:
        prev = genesis_hash()
        for b in self._read_blocks():
            if b.get("prev_hash") != prev:
                return False
            exp_hash = h_block({"prev_hash": prev, "entry": b.get("entry")})
            if b.get("block_hash") != exp_hash:
                return False
            prev = b["block_hash"]
        return True

    def find_by(self, key: str, value: Any) -> List[Dict[str, Any]]:
        out = []
        for b in self._read_blocks():
            e = b["entry"]
            if isinstance(e, dict) and e.get(key) == value:
                out.append(b)
        return out

    def all_entries(self) -> List[Dict[str, Any]]:
        return [b["entry"] for b in self._read_blocks()]
