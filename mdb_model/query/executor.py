"""
CRUD Executor.

Turns a finished builder state into exactly one driver call on the model's
collection. The executor speaks on-disk names only: renaming, masking and
timestamping happen in the builder before and after it is called.

Every call is timed, logged through `log_operation` at DEBUG level and
recorded in the metrics collector as `model.<operation>`. Driver failures are
re-raised as QueryExecutionError chained to the original error; nothing is
retried and task cancellation propagates unchanged.

This module is part of MDB_MODEL.
"""

import logging
import time
from dataclasses import dataclass
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
)

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorCollection
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError
from pymongo.results import DeleteResult, InsertManyResult, InsertOneResult, UpdateResult

from ..exceptions import QueryExecutionError
from ..metadata import ModelMetadata
from ..observability import get_logger as get_contextual_logger
from ..observability import log_operation, model_context, record_operation

logger = logging.getLogger(__name__)
contextual_logger = get_contextual_logger(__name__)

T = TypeVar("T")

Document = Dict[str, Any]
SortSpec = Sequence[Tuple[str, Any]]


@dataclass
class WriteOutcome:
    """
    Result of an update or delete issued through the builder.

    Attributes:
        operation: Driver operation that ran (e.g. "find_one_and_update")
        affected: Number of documents matched (single-document operations
                  report 0 or 1)
        document: Masked document as it was before the write (single-document
                  operations only)
        upserted_id: Identifier of a document inserted by an upsert
    """

    operation: str
    affected: int = 0
    document: Optional[Document] = None
    upserted_id: Any = None

    @property
    def acknowledged(self) -> bool:
        return self.affected > 0 or self.upserted_id is not None


class CrudExecutor:
    """
    Issues driver calls for one model's collection.

    Example:
        executor = CrudExecutor(db["user"], User.__metadata__)
        documents = await executor.find({"name": "Smko"}, session=session)
    """

    __slots__ = ("_collection", "_metadata")

    def __init__(self, collection: AsyncIOMotorCollection, metadata: ModelMetadata):
        self._collection = collection
        self._metadata = metadata

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self._collection

    @property
    def _log_prefix(self) -> str:
        return f"[{self._metadata.collection}]"

    def _context(self):
        return model_context(self._metadata.model_name, collection=self._metadata.collection)

    def _failure(self, operation: str, error: PyMongoError) -> QueryExecutionError:
        contextual_logger.exception(
            f"{self._log_prefix} Database operation failed in {operation}",
            extra={"operation": operation},
        )
        return QueryExecutionError(
            f"Failed to execute {operation}: {error}",
            operation=operation,
            collection_name=self._metadata.collection,
        )

    def _record(self, operation: str, start: float, success: bool) -> None:
        duration_ms = (time.time() - start) * 1000
        record_operation(
            f"model.{operation}",
            duration_ms,
            success=success,
            collection=self._metadata.collection,
        )
        log_operation(
            logger,
            f"model.{operation}",
            level=logging.DEBUG,
            success=success,
            duration_ms=duration_ms,
            collection=self._metadata.collection,
        )

    async def _execute(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        start = time.time()
        success = False
        with self._context():
            try:
                result = await call()
                success = True
                return result
            except PyMongoError as e:
                raise self._failure(operation, e) from e
            finally:
                self._record(operation, start, success)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert_one(
        self, document: Document, session: Optional[AsyncIOMotorClientSession] = None
    ) -> InsertOneResult:
        return await self._execute(
            "insert_one", lambda: self._collection.insert_one(document, session=session)
        )

    async def insert_many(
        self,
        documents: List[Document],
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> InsertManyResult:
        return await self._execute(
            "insert_many", lambda: self._collection.insert_many(documents, session=session)
        )

    async def find_one_and_update(
        self,
        filter: Mapping[str, Any],
        update: Mapping[str, Any],
        upsert: bool = False,
        sort: Optional[SortSpec] = None,
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> Optional[Document]:
        """Update one document and return it as it was before the update."""
        return await self._execute(
            "find_one_and_update",
            lambda: self._collection.find_one_and_update(
                filter,
                update,
                sort=list(sort) if sort else None,
                upsert=upsert,
                return_document=ReturnDocument.BEFORE,
                session=session,
            ),
        )

    async def update_many(
        self,
        filter: Mapping[str, Any],
        update: Mapping[str, Any],
        upsert: bool = False,
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> UpdateResult:
        return await self._execute(
            "update_many",
            lambda: self._collection.update_many(filter, update, upsert=upsert, session=session),
        )

    async def find_one_and_delete(
        self,
        filter: Mapping[str, Any],
        sort: Optional[SortSpec] = None,
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> Optional[Document]:
        return await self._execute(
            "find_one_and_delete",
            lambda: self._collection.find_one_and_delete(
                filter, sort=list(sort) if sort else None, session=session
            ),
        )

    async def delete_many(
        self,
        filter: Mapping[str, Any],
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> DeleteResult:
        return await self._execute(
            "delete_many", lambda: self._collection.delete_many(filter, session=session)
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _cursor(
        self,
        filter: Mapping[str, Any],
        projection: Optional[Mapping[str, Any]],
        sort: Optional[SortSpec],
        skip: int,
        limit: int,
        session: Optional[AsyncIOMotorClientSession],
    ):
        return self._collection.find(
            filter,
            projection,
            sort=list(sort) if sort else None,
            skip=skip,
            limit=limit,
            session=session,
        )

    async def find(
        self,
        filter: Mapping[str, Any],
        projection: Optional[Mapping[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: int = 0,
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> List[Document]:
        """Fetch every matching document."""

        async def fetch() -> List[Document]:
            cursor = self._cursor(filter, projection, sort, skip, limit, session)
            return await cursor.to_list(None)

        return await self._execute("find", fetch)

    async def find_one(
        self,
        filter: Mapping[str, Any],
        projection: Optional[Mapping[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> Optional[Document]:
        return await self._execute(
            "find_one",
            lambda: self._collection.find_one(
                filter,
                projection,
                sort=list(sort) if sort else None,
                skip=skip,
                session=session,
            ),
        )

    async def iterate(
        self,
        filter: Mapping[str, Any],
        projection: Optional[Mapping[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: int = 0,
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> AsyncIterator[Document]:
        """Stream matching documents without materializing the result set."""
        start = time.time()
        success = False
        try:
            async for document in self._cursor(filter, projection, sort, skip, limit, session):
                yield document
            success = True
        except PyMongoError as e:
            with self._context():
                error = self._failure("find", e)
            raise error from e
        finally:
            with self._context():
                self._record("find", start, success)

    async def count_documents(
        self,
        filter: Mapping[str, Any],
        skip: int = 0,
        limit: int = 0,
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> int:
        # The server rejects a zero $limit stage
        options: Dict[str, Any] = {}
        if skip:
            options["skip"] = skip
        if limit:
            options["limit"] = limit
        return await self._execute(
            "count_documents",
            lambda: self._collection.count_documents(filter, session=session, **options),
        )

    async def distinct(
        self,
        key: str,
        filter: Mapping[str, Any],
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> List[Any]:
        return await self._execute(
            "distinct", lambda: self._collection.distinct(key, filter, session=session)
        )

    async def aggregate(
        self,
        pipeline: List[Mapping[str, Any]],
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> List[Document]:
        async def fetch() -> List[Document]:
            return await self._collection.aggregate(pipeline, session=session).to_list(None)

        return await self._execute("aggregate", fetch)
