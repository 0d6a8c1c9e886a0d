"""
Ledger error codes and exceptions.

Every failure an operation can report maps to exactly one ErrorCode. The
operation boundary (see service.py) turns a raised LedgerError into a failed
OperationResult; nothing in this module is meant to escape to callers of the
public surface.

Code ranges:
- 300, 305-307: authorization ("not allowed")
- 301-302: resource existence
- 303-304, 308: input validation ("malformed input")
"""

from __future__ import annotations

from enum import IntEnum
from typing import Dict, Type


class ErrorCode(IntEnum):
    """Enumerated failure kinds of the public operation surface."""
    AUTHORITY_REQUIRED = 300
    RESOURCE_NOT_FOUND = 301
    DUPLICATE_RESOURCE = 302
    FIELD_LENGTH_VIOLATION = 303
    NUMERIC_RANGE_VIOLATION = 304
    PERMISSION_DENIED = 305
    OWNERSHIP_MISMATCH = 306
    ACCESS_FORBIDDEN = 307
    METADATA_FORMAT_ERROR = 308

    @property
    def label(self) -> str:
        """CamelCase name used on the wire (e.g. 'OwnershipMismatch')."""
        return "".join(part.capitalize() for part in self.name.split("_"))


class LedgerError(Exception):
    """Base class for ledger failures carrying an ErrorCode."""
    code: ErrorCode

    def __init__(self, message: str = ""):
        super().__init__(message or self.code.label)
        self.message = message or self.code.label


class AuthorityRequired(LedgerError):
    code = ErrorCode.AUTHORITY_REQUIRED


class ResourceNotFound(LedgerError):
    code = ErrorCode.RESOURCE_NOT_FOUND


class DuplicateResource(LedgerError):
    code = ErrorCode.DUPLICATE_RESOURCE


class FieldLengthViolation(LedgerError):
    code = ErrorCode.FIELD_LENGTH_VIOLATION


class NumericRangeViolation(LedgerError):
    code = ErrorCode.NUMERIC_RANGE_VIOLATION


class PermissionDenied(LedgerError):
    code = ErrorCode.PERMISSION_DENIED


class OwnershipMismatch(LedgerError):
    code = ErrorCode.OWNERSHIP_MISMATCH


class AccessForbidden(LedgerError):
    code = ErrorCode.ACCESS_FORBIDDEN


class MetadataFormatError(LedgerError):
    code = ErrorCode.METADATA_FORMAT_ERROR


ERRORS_BY_CODE: Dict[ErrorCode, Type[LedgerError]] = {
    cls.code: cls
    for cls in (
        AuthorityRequired,
        ResourceNotFound,
        DuplicateResource,
        FieldLengthViolation,
        NumericRangeViolation,
        PermissionDenied,
        OwnershipMismatch,
        AccessForbidden,
        MetadataFormatError,
    )
}

AUTHORIZATION_CODES = frozenset({
    ErrorCode.AUTHORITY_REQUIRED,
    ErrorCode.PERMISSION_DENIED,
    ErrorCode.OWNERSHIP_MISMATCH,
    ErrorCode.ACCESS_FORBIDDEN,
})

VALIDATION_CODES = frozenset({
    ErrorCode.FIELD_LENGTH_VIOLATION,
    ErrorCode.NUMERIC_RANGE_VIOLATION,
    ErrorCode.METADATA_FORMAT_ERROR,
})


class AuthorityMismatchError(Exception):
    """Raised when persisted state is reopened with a different protocol authority."""
    pass


class JournalIntegrityError(Exception):
    """Raised when appending to a journal whose hash chain does not verify."""
    pass


class SchemaDowngradeError(Exception):
    """Raised when persisted state or a journal entry has an unsupported schema."""
    pass
