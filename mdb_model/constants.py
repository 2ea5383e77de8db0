"""
Constants for MDB_MODEL.

Shared constants used across the codebase to avoid magic strings and numbers.
"""

from typing import Final

# ============================================================================
# DOCUMENT FIELD CONSTANTS
# ============================================================================

ID_FIELD: Final[str] = "_id"
"""Driver-generated identifier field present on every stored document."""

CREATED_AT_FIELD: Final[str] = "created_at"
"""Timestamp set once when a document is created."""

UPDATED_AT_FIELD: Final[str] = "updated_at"
"""Timestamp refreshed on every write."""

TIMESTAMP_FIELDS: Final[tuple[str, ...]] = (CREATED_AT_FIELD, UPDATED_AT_FIELD)

# ============================================================================
# INDEX CONSTANTS
# ============================================================================

ID_INDEX_NAME: Final[str] = "_id_"
"""Name of the index MongoDB creates automatically on every collection."""

TEXT_INDEX_KEY: Final[str] = "_fts"
"""Key MongoDB stores in place of the field name for text indexes."""

DEFAULT_TEXT_LANGUAGE: Final[str] = "english"

# ============================================================================
# VALIDATION CONSTANTS
# ============================================================================

MAX_COLLECTION_NAME_LENGTH: Final[int] = 255
"""Maximum length for MongoDB collection names."""

RESERVED_COLLECTION_PREFIXES: Final[tuple[str, ...]] = ("system.",)
"""Collection name prefixes reserved by MongoDB."""

FORBIDDEN_NAME_CHARACTERS: Final[tuple[str, ...]] = ("$", "\x00")
"""Characters that may not appear in collection or field names."""

# ============================================================================
# DATABASE CONSTANTS
# ============================================================================

DEFAULT_MAX_POOL_SIZE: Final[int] = 50
"""Default maximum MongoDB connection pool size."""

DEFAULT_MIN_POOL_SIZE: Final[int] = 10
"""Default minimum MongoDB connection pool size."""

DEFAULT_SERVER_SELECTION_TIMEOUT_MS: Final[int] = 5000
"""Default server selection timeout in milliseconds."""

MIN_SERVER_SELECTION_TIMEOUT_MS: Final[int] = 1000
