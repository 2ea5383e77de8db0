"""
Index Management Module

Reconciles field-level index declarations with a collection's live indexes.

This module is part of MDB_MODEL.
"""

from .helpers import IndexPlan, existing_signature, is_id_index, plan_indexes
from .synchronizer import IndexSynchronizer, IndexSyncReport, sync_indexes

__all__ = [
    "IndexPlan",
    "IndexSynchronizer",
    "IndexSyncReport",
    "existing_signature",
    "is_id_index",
    "plan_indexes",
    "sync_indexes",
]
