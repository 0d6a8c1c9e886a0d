"""
Field bound checks for agricultural records.

The `valid_*` predicates are pure; the `check_*` helpers raise the matching
LedgerError so operations can fail fast before touching the store. Inputs
outside a bound are rejected, never truncated.
"""

from __future__ import annotations

from typing import Any, Sequence

from agri_ledger.errors import (
    FieldLengthViolation,
    MetadataFormatError,
    NumericRangeViolation,
)

MAX_NAME_LENGTH = 64
MAX_LOCATION_LENGTH = 128
MAX_TAG_LENGTH = 32
MAX_TAGS = 10
MAX_VOLUME_EXCLUSIVE = 1_000_000_000


def _bounded_text(value: Any, upper: int) -> bool:
    return isinstance(value, str) and 1 <= len(value) <= upper


def valid_tag(tag: Any) -> bool:
    return _bounded_text(tag, MAX_TAG_LENGTH)


def valid_tag_collection(tags: Any) -> bool:
    if isinstance(tags, str) or not isinstance(tags, Sequence):
        return False
    return 1 <= len(tags) <= MAX_TAGS and all(valid_tag(t) for t in tags)


def valid_name(name: Any) -> bool:
    return _bounded_text(name, MAX_NAME_LENGTH)


def valid_location(location: Any) -> bool:
    return _bounded_text(location, MAX_LOCATION_LENGTH)


def valid_volume(volume: Any) -> bool:
    # bool is an int subclass; True is not a volume
    if isinstance(volume, bool) or not isinstance(volume, int):
        return False
    return 1 <= volume < MAX_VOLUME_EXCLUSIVE


def check_name(name: Any) -> None:
    if not valid_name(name):
        raise FieldLengthViolation(f"produce identifier must be 1-{MAX_NAME_LENGTH} characters")


def check_location(location: Any) -> None:
    if not valid_location(location):
        raise FieldLengthViolation(f"location must be 1-{MAX_LOCATION_LENGTH} characters")


def check_volume(volume: Any) -> None:
    if not valid_volume(volume):
        raise NumericRangeViolation(f"volume must be in [1, {MAX_VOLUME_EXCLUSIVE})")


def check_tags(tags: Any) -> None:
    if not valid_tag_collection(tags):
        raise MetadataFormatError(
            f"tags must be 1-{MAX_TAGS} entries of 1-{MAX_TAG_LENGTH} characters"
        )


def check_record_fields(name: Any, volume: Any, location: Any, tags: Any) -> None:
    """Validate a full set of record fields in declaration order."""
    check_name(name)
    check_volume(volume)
    check_location(location)
    check_tags(tags)
