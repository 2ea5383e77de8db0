"""
Index Synchronizer

Reconciles the indexes declared on a model's fields with the indexes present
on the live collection. Synchronization only ever adds indexes: an index that
is no longer declared is left in place unless `drop_undeclared()` is called
explicitly.

This module is part of MDB_MODEL.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo.errors import PyMongoError

from ..constants import ID_INDEX_NAME
from ..exceptions import IndexSyncError
from ..metadata import ModelMetadata
from ..observability import get_logger as get_contextual_logger
from ..observability import model_context, record_operation
from .helpers import (IndexPlan, existing_signature, is_compound_index, is_id_index,
                      plan_indexes)

logger = logging.getLogger(__name__)
contextual_logger = get_contextual_logger(__name__)


@dataclass
class IndexSyncReport:
    """Outcome of one synchronization run."""

    collection: str
    created: List[str] = field(default_factory=list)
    existing: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created)


class IndexSynchronizer:
    """
    Makes a collection's index set a superset of a model's declared indexes.

    Example:
        synchronizer = IndexSynchronizer(db["user"], User.__metadata__)
        report = await synchronizer.sync()
        print(report.created)

    Running `sync()` any number of times yields the same final index set as
    running it once: an index is only requested when no index with the same
    key pattern and uniqueness exists.
    """

    __slots__ = ("_collection", "_metadata", "_plans")

    def __init__(self, collection: AsyncIOMotorCollection, metadata: ModelMetadata):
        self._collection = collection
        self._metadata = metadata
        self._plans: List[IndexPlan] = plan_indexes(metadata.fields)

    @property
    def plans(self) -> List[IndexPlan]:
        """Indexes implied by the model's field declarations."""
        return list(self._plans)

    @property
    def _log_prefix(self) -> str:
        return f"[{self._metadata.collection}]"

    def _context(self):
        return model_context(self._metadata.model_name, collection=self._metadata.collection)

    async def list_indexes(self) -> List[Dict[str, Any]]:
        """
        Lists all standard indexes on the collection.

        Raises:
            IndexSyncError: If the indexes cannot be enumerated
        """
        try:
            return await self._collection.list_indexes().to_list(None)
        except PyMongoError as e:
            contextual_logger.exception(f"{self._log_prefix} Database error listing indexes")
            raise IndexSyncError(
                "Failed to list indexes",
                collection_name=self._metadata.collection,
                context={"operation": "list_indexes"},
            ) from e

    async def sync(self) -> IndexSyncReport:
        """
        Create every declared index that is missing from the collection.

        Every missing index is attempted; failures are collected per index and
        reported together once all creations have been tried.

        Returns:
            IndexSyncReport with created and already-present index names

        Raises:
            IndexSyncError: If listing fails or any index could not be created
        """
        with self._context():
            return await self._sync()

    async def _sync(self) -> IndexSyncReport:
        start = time.time()
        report = IndexSyncReport(collection=self._metadata.collection)
        if not self._plans:
            logger.debug(f"{self._log_prefix} No declared indexes; nothing to synchronize.")
            return report

        present = {
            existing_signature(index): index.get("name")
            for index in await self.list_indexes()
            if not is_id_index(index.get("key", {}))
        }

        failures: Dict[str, str] = {}
        for plan in self._plans:
            if plan.signature in present:
                logger.debug(
                    f"{self._log_prefix} Index '{present[plan.signature]}' matches "
                    f"{list(plan.keys)} (unique={plan.unique}); skipping."
                )
                report.existing.append(present[plan.signature])
                continue

            contextual_logger.info(
                f"{self._log_prefix} Creating index '{plan.name}' with keys "
                f"{list(plan.keys)} (unique={plan.unique})..."
            )
            try:
                name = await self._collection.create_index(list(plan.keys), **plan.create_kwargs())
            except PyMongoError as e:
                contextual_logger.error(
                    f"{self._log_prefix} Failed to create index '{plan.name}': {e}",
                    extra={"index_name": plan.name},
                )
                failures[plan.name] = str(e)
                continue
            contextual_logger.info(
                f"{self._log_prefix} Created index '{name}'.", extra={"index_name": name}
            )
            report.created.append(name)

        duration_ms = (time.time() - start) * 1000
        record_operation(
            "model.sync_indexes",
            duration_ms,
            success=not failures,
            collection=self._metadata.collection,
        )

        if failures:
            raise IndexSyncError(
                f"Failed to create {len(failures)} of {len(self._plans)} declared index(es)",
                collection_name=self._metadata.collection,
                failures=failures,
            )
        return report

    async def drop_undeclared(self) -> List[str]:
        """
        Drop indexes that no field declares any more.

        Destructive and never invoked by `sync()`. Only single-field and text
        indexes are considered; the `_id_` index, compound indexes and every
        index matching a declaration are kept.

        Returns:
            Names of the dropped indexes

        Raises:
            IndexSyncError: If listing or dropping fails
        """
        with self._context():
            return await self._drop_undeclared()

    async def _drop_undeclared(self) -> List[str]:
        declared = {plan.signature for plan in self._plans}
        dropped: List[str] = []

        for index in await self.list_indexes():
            name = index.get("name")
            if name == ID_INDEX_NAME or is_id_index(index.get("key", {})):
                continue
            if is_compound_index(index.get("key", {})):
                continue
            if existing_signature(index) in declared:
                continue

            contextual_logger.warning(
                f"{self._log_prefix} Dropping undeclared index '{name}'.", extra={"index_name": name}
            )
            try:
                await self._collection.drop_index(name)
            except PyMongoError as e:
                contextual_logger.exception(
                    f"{self._log_prefix} OperationFailure dropping index '{name}'",
                    extra={"index_name": name},
                )
                raise IndexSyncError(
                    f"Failed to drop index '{name}'",
                    collection_name=self._metadata.collection,
                    failures={name: str(e)},
                    context={"operation": "drop_index"},
                ) from e
            dropped.append(name)

        return dropped


async def sync_indexes(collection: AsyncIOMotorCollection, metadata: ModelMetadata) -> IndexSyncReport:
    """Convenience wrapper: synchronize one collection against one model."""
    return await IndexSynchronizer(collection, metadata).sync()
