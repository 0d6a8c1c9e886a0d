from __future__ import annotations

import time
import uuid
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from agri_ledger import __schema__
from agri_ledger.errors import ERRORS_BY_CODE, ErrorCode, LedgerError

Operation = Literal[
    "create-agricultural-record",
    "verify-asset-authenticity",
    "transfer-asset-ownership",
    "revoke-ledger-access",
    "append-asset-metadata",
    "modify-asset-record",
    "purge-asset-record",
    "activate-emergency-restriction",
]

def now_utc() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())

def new_id(prefix: str) -> str:
    """
    Generate UUIDv7-style time-ordered ID for journal entries.

    Format: {prefix}_{timestamp_ms:013x}_{random:016x}
    """
    timestamp_ms = int(time.time() * 1000)
    random_bits = uuid.uuid4().hex[:16]  # 64 random bits
    return f"{prefix}_{timestamp_ms:013x}_{random_bits}"

class AssetRecord(BaseModel):
    """
    One produce batch as held by the ledger.

    Field bounds are enforced by agri_ledger.validation before a record is
    built; the model itself only carries the shape.
    """
    produce_identifier: str = Field(alias="produceIdentifier")
    cultivator_address: str = Field(alias="cultivatorAddress")
    production_volume: int = Field(alias="productionVolume")
    timestamp_height: int = Field(alias="timestampHeight")
    location_metadata: str = Field(alias="locationMetadata")
    category_descriptors: List[str] = Field(alias="categoryDescriptors")
    locked: bool = False

    model_config = {"populate_by_name": True}

    def to_storage(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

class AuthenticityReport(BaseModel):
    is_authentic: bool = Field(alias="isAuthentic")
    current_height: int = Field(alias="currentHeight")
    age: int
    farmer_match: bool = Field(alias="farmerMatch")

    model_config = {"populate_by_name": True}

class OperationResult(BaseModel):
    """
    Outcome of one public ledger operation.

    Exactly one of `value` (on success) or `error` (on failure) is meaningful.
    """
    ok: bool
    value: Any = None
    error: Optional[ErrorCode] = None
    message: Optional[str] = None

    @classmethod
    def success(cls, value: Any) -> OperationResult:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, err: LedgerError) -> OperationResult:
        return cls(ok=False, error=err.code, message=err.message)

    @property
    def error_name(self) -> Optional[str]:
        return self.error.label if self.error is not None else None

    def unwrap(self) -> Any:
        """Return the success value or re-raise the failure as its LedgerError."""
        if self.ok:
            return self.value
        if self.error is None:
            raise ValueError("failed OperationResult carries no error code")
        raise ERRORS_BY_CODE[self.error](self.message or "")

class OperationJournalEntry(BaseModel):
    kind: Literal["OperationJournalEntry"] = "OperationJournalEntry"
    schema_version: str = Field(default=__schema__, alias="schema")  # Schema version stamp
    entry_id: str = Field(default_factory=lambda: new_id("op"))
    recorded_utc: str = Field(default_factory=now_utc)
    operation: Operation
    caller: str
    sequence_id: int
    height: int
    detail: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}
