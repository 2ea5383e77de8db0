"""
Query building blocks used by Model instances.

- state: builder state (filter, visibility overrides, cardinality, options)
- visibility: field renaming and hidden-field masking
- timestamps: created_at / updated_at maintenance
- executor: driver calls with error wrapping, logging and metrics
"""

from .executor import CrudExecutor, WriteOutcome
from .state import Cardinality, QueryState
from .timestamps import stamp_create, stamp_update, utc_now
from .visibility import (
    apply_mask,
    rename_filter,
    rename_projection,
    rename_sort,
    rename_update,
    to_storage,
)

__all__ = [
    "Cardinality",
    "QueryState",
    "CrudExecutor",
    "WriteOutcome",
    "stamp_create",
    "stamp_update",
    "utc_now",
    "apply_mask",
    "rename_filter",
    "rename_projection",
    "rename_sort",
    "rename_update",
    "to_storage",
]
