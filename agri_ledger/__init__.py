"""
Agri Ledger - Provenance ledger for agricultural production records.

Schema Version: agri-ledger/v1
"""

__version__ = "0.1.0"
__schema__ = "agri-ledger/v1"

# Supported schema versions (for backward compatibility)
SUPPORTED_SCHEMAS = [
    "agri-ledger/v1",
]

# Minimum required schema for persisted state and journal entries
MIN_SCHEMA_VERSION = "agri-ledger/v1"
