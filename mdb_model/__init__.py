"""
MDB_MODEL - typed models over MongoDB

Declare a record type once (collection, hidden and renamed fields, indexes,
timestamps) and query it through a chainable builder on top of motor.
"""

# Configuration and connection
from .config import ModelConfig
from .connection import connect, create_client
# Errors
from .exceptions import (ConfigurationError, IndexSyncError, ModelError,
                         QueryExecutionError, UsageError)
# Declarations
from .fields import Field, FieldSpec, IndexKind, IndexSpec
# Index management
from .indexes import IndexSynchronizer, IndexSyncReport, sync_indexes
from .metadata import ModelMetadata, build_metadata, metadata_from_definition
# Models
from .model import Model, new_model
from .query import Cardinality, WriteOutcome

__version__ = "0.1.0"

__all__ = [
    # Models
    "Model",
    "new_model",
    "WriteOutcome",
    "Cardinality",
    # Declarations
    "Field",
    "FieldSpec",
    "IndexKind",
    "IndexSpec",
    "ModelMetadata",
    "build_metadata",
    "metadata_from_definition",
    # Indexes
    "IndexSynchronizer",
    "IndexSyncReport",
    "sync_indexes",
    # Configuration
    "ModelConfig",
    "connect",
    "create_client",
    # Errors
    "ModelError",
    "ConfigurationError",
    "IndexSyncError",
    "UsageError",
    "QueryExecutionError",
]
