"""
Model: the query builder bound to one collection.

A model class declares its collection, request context type and fields once:

    class User(Model[bool], collection="user", req=bool):
        name = Field()
        phone = Field(asc=True, unique=True)
        age = Field(desc=True, default=0)
        password = Field(hidden=True, name="pswd")

An instance is a unit of work. It borrows the database handle, holds the
caller's request context and field values, and accumulates query state
through chainable builder calls until a terminal call runs it:

    users = await User.open(db)
    smko = await users.where({"name": "Smko"}).visible("password").first()
    await users.reset().where({"name": "Smko"}).update({"$inc": {"age": 1}})

Builder state persists across terminal calls until `reset()`. Instances are
not safe for concurrent use; create one per task.

This module is part of MDB_MODEL.
"""

import types
from typing import (
    Any,
    AsyncIterator,
    ClassVar,
    Dict,
    Generic,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Type,
    TypeVar,
    Union,
)

from motor.motor_asyncio import (
    AsyncIOMotorClientSession,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)
from pymongo.results import InsertManyResult, InsertOneResult

from .constants import ID_FIELD
from .exceptions import ConfigurationError, UsageError
from .fields import Field
from .indexes import IndexSynchronizer, IndexSyncReport
from .metadata import ModelMetadata, build_metadata, fields_from_definition
from .observability import get_logger as get_contextual_logger
from .observability import model_context
from .query import (
    Cardinality,
    CrudExecutor,
    QueryState,
    WriteOutcome,
    apply_mask,
    rename_filter,
    rename_projection,
    rename_sort,
    rename_update,
    stamp_create,
    stamp_update,
    to_storage,
    utc_now,
)

contextual_logger = get_contextual_logger(__name__)

ReqT = TypeVar("ReqT")
M = TypeVar("M", bound="Model")

Document = Dict[str, Any]
Session = Optional[AsyncIOMotorClientSession]


class Model(Generic[ReqT]):
    """
    Base class for typed models.

    Class keyword arguments:
        collection: Collection backing the model (inherited from a concrete
                    parent model when omitted)
        req: Type tag of the request context passed to hooks
        timestamps: Maintain created_at / updated_at (default True)
        abstract: Declare shared fields without registering a collection
    """

    __metadata__: ClassVar[Optional[ModelMetadata]] = None
    __fields__: ClassVar[Dict[str, Field]] = {}

    def __init_subclass__(
        cls,
        collection: Optional[str] = None,
        req: Any = None,
        timestamps: Optional[bool] = None,
        abstract: bool = False,
        **kwargs: Any,
    ) -> None:
        super().__init_subclass__(**kwargs)

        fields: Dict[str, Field] = {}
        for klass in reversed(cls.__mro__):
            for name, value in vars(klass).items():
                if isinstance(value, Field):
                    fields[name] = value

        reserved = [name for name in fields if name in vars(Model) or name.startswith("_")]
        if reserved:
            raise ConfigurationError(
                f"Field name(s) {', '.join(sorted(reserved))} clash with the model API",
                model_name=cls.__name__,
                field_name=sorted(reserved)[0],
            )

        cls.__fields__ = fields
        if abstract:
            cls.__metadata__ = None
            return

        parent = next(
            (
                base.__metadata__
                for base in cls.__mro__[1:]
                if isinstance(base, type) and getattr(base, "__metadata__", None) is not None
            ),
            None,
        )
        if parent is not None:
            collection = collection if collection is not None else parent.collection
            req = req if req is not None else parent.request_type
            timestamps = timestamps if timestamps is not None else parent.timestamps

        cls.__metadata__ = build_metadata(
            model_name=cls.__name__,
            collection=collection,
            fields=fields,
            request_type=req,
            timestamps=True if timestamps is None else timestamps,
        )

    def __init__(self, db: AsyncIOMotorDatabase, req: Optional[ReqT] = None, **values: Any):
        metadata = type(self).__metadata__
        if metadata is None:
            raise ConfigurationError(
                f"Model '{type(self).__name__}' is abstract or was never registered",
                model_name=type(self).__name__,
            )
        self._db = db
        self._req = req
        self._values: Document = {}
        self._state = QueryState()
        self._executor = CrudExecutor(db[metadata.collection], metadata)
        if values:
            self.fill(values)

    def __getattr__(self, name: str) -> Any:
        # Implicit fields (created_at / updated_at) have no descriptor
        metadata = type(self).__metadata__
        values = self.__dict__.get("_values")
        if values is not None and metadata is not None and metadata.get_field(name) is not None:
            return values.get(name)
        raise AttributeError(f"'{type(self).__name__}' object has no attribute '{name}'")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(collection={self.__metadata__.collection!r}, id={self.id!r})"

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def new_model(cls: Type[M], db: AsyncIOMotorDatabase, req: Optional[Any] = None) -> M:
        """Create an instance bound to `db` without touching the collection."""
        return cls(db, req)

    @classmethod
    async def open(
        cls: Type[M], db: AsyncIOMotorDatabase, req: Optional[Any] = None, sync: bool = True
    ) -> M:
        """
        Synchronize the model's indexes, then create an instance.

        Raises:
            IndexSyncError: If any declared index could not be created; no
                            instance is returned in that case
        """
        if sync:
            await cls.sync_indexes(db)
        return cls.new_model(db, req)

    @classmethod
    def _registered_metadata(cls) -> ModelMetadata:
        if cls.__metadata__ is None:
            raise ConfigurationError(
                f"Model '{cls.__name__}' is abstract or was never registered",
                model_name=cls.__name__,
            )
        return cls.__metadata__

    @classmethod
    def index_synchronizer(cls, db: AsyncIOMotorDatabase) -> IndexSynchronizer:
        metadata = cls._registered_metadata()
        return IndexSynchronizer(db[metadata.collection], metadata)

    @classmethod
    async def sync_indexes(cls, db: AsyncIOMotorDatabase) -> IndexSyncReport:
        """Create every declared index missing from the collection. Never drops."""
        return await cls.index_synchronizer(db).sync()

    @classmethod
    async def drop_undeclared_indexes(cls, db: AsyncIOMotorDatabase) -> List[str]:
        """Drop indexes no field declares. Destructive; never run implicitly."""
        return await cls.index_synchronizer(db).drop_undeclared()

    @classmethod
    def define(
        cls,
        name: str,
        definition: Dict[str, Any],
        req: Any = None,
    ) -> Type["Model"]:
        """
        Build a model class from a dictionary definition.

        Example:
            Article = Model.define("Article", {
                "collection": "articles",
                "fields": {"title": {"text": "english"}, "slug": {"unique": True}},
            })
        """
        fields = fields_from_definition(definition, model_name=name)
        class_kwargs = {
            "collection": definition.get("collection"),
            "req": req,
            "timestamps": definition.get("timestamps", True),
        }
        return types.new_class(name, (cls,), class_kwargs, lambda ns: ns.update(fields))

    # ------------------------------------------------------------------
    # Instance data
    # ------------------------------------------------------------------

    @property
    def id(self) -> Any:
        return self._values.get(ID_FIELD)

    @property
    def req(self) -> Optional[ReqT]:
        return self._req

    @property
    def state(self) -> QueryState:
        return self._state

    def collection(self) -> AsyncIOMotorCollection:
        return self._executor.collection

    def set_request(self: M, req: Optional[ReqT]) -> M:
        self._req = req
        return self

    def fill(self: M, values: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> M:
        """
        Set field values from a mapping and/or keyword arguments.

        Keys are attribute names; `_id` is accepted. Unknown keys raise
        UsageError.
        """
        metadata = self.__metadata__
        merged = {**(values or {}), **kwargs}
        unknown = [k for k in merged if k != ID_FIELD and metadata.get_field(k) is None]
        if unknown:
            raise UsageError(
                f"Unknown field(s) for {metadata.model_name}: {', '.join(sorted(unknown))}",
                operation="fill",
            )
        self._values.update(merged)
        return self

    def to_document(self) -> Document:
        """The instance's field values keyed by on-disk names, defaults applied."""
        metadata = self.__metadata__
        document: Document = {}
        if ID_FIELD in self._values:
            document[ID_FIELD] = self._values[ID_FIELD]
        for spec in metadata.fields:
            if spec.attr_name in self._values:
                document[spec.db_name] = self._values[spec.attr_name]
                continue
            declared = self.__fields__.get(spec.attr_name)
            if declared is not None and declared.has_default:
                document[spec.db_name] = declared.get_default()
        return document

    # ------------------------------------------------------------------
    # Builder
    # ------------------------------------------------------------------

    def where(self: M, filter: Mapping[str, Any]) -> M:
        """AND a filter expression onto the accumulated filter."""
        if not isinstance(filter, Mapping):
            raise UsageError(
                f"where() expects a mapping, got {type(filter).__name__}", operation="where"
            )
        self._state.add_filter(dict(filter))
        return self

    def visible(self: M, *names: Union[str, Iterable[str]]) -> M:
        """Unmask hidden fields for this query. Additive across calls."""
        for name in names:
            if isinstance(name, str):
                self._state.visible.add(name)
            else:
                self._state.visible.update(name)
        return self

    def all(self: M) -> M:
        """Target every matching document in update/delete."""
        self._state.cardinality = Cardinality.MULTI
        return self

    def sort(self: M, spec: Union[str, Mapping[str, Any], Sequence[Any]], direction: int = 1) -> M:
        """
        Add sort keys. Accepts a field name and direction, a mapping, or a
        list of (field, direction) pairs.
        """
        if isinstance(spec, str):
            self._state.sort.append((spec, direction))
        elif isinstance(spec, Mapping):
            self._state.sort.extend(spec.items())
        else:
            self._state.sort.extend((key, value) for key, value in spec)
        return self

    def skip(self: M, count: int) -> M:
        self._state.skip = self._non_negative("skip", count)
        return self

    def limit(self: M, count: int) -> M:
        self._state.limit = self._non_negative("limit", count)
        return self

    def select(self: M, projection: Union[Mapping[str, Any], Iterable[str]]) -> M:
        """Restrict returned fields; a list of names selects them."""
        if not isinstance(projection, Mapping):
            projection = {name: 1 for name in projection}
        self._state.projection = dict(projection)
        return self

    def upsert(self: M, enabled: bool = True) -> M:
        self._state.upsert = enabled
        return self

    def reset(self: M) -> M:
        """Discard all query state. Field values and request context are kept."""
        self._state = QueryState()
        return self

    @staticmethod
    def _non_negative(operation: str, count: Any) -> int:
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise UsageError(
                f"{operation}() expects a non-negative integer, got {count!r}",
                operation=operation,
            )
        return count

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def cast(self, document: Document, req: Optional[ReqT]) -> Document:
        """Transform every fetched document (on-disk names) before masking."""
        return document

    async def finish(
        self,
        req: Optional[ReqT],
        operation: str,
        old: Document,
        new: Document,
        session: Session,
    ) -> None:
        """Called after every successful write."""
        contextual_logger.debug(f"{operation} operation completed: {old!r} => {new!r}")

    async def _finished(self, operation: str, old: Document, new: Document, session: Session) -> None:
        metadata = self.__metadata__
        with model_context(metadata.model_name, collection=metadata.collection, operation=operation):
            await self.finish(self._req, operation, old, new, session)

    # ------------------------------------------------------------------
    # Terminal operations
    # ------------------------------------------------------------------

    def _filter(self) -> Document:
        return rename_filter(self.__metadata__, self._state.filter_document())

    def _sort(self) -> list:
        return rename_sort(self.__metadata__, self._state.sort)

    def _present(self, document: Optional[Document], strict: bool = True) -> Optional[Document]:
        if document is None:
            return None
        document = self.cast(document, self._req)
        return apply_mask(self.__metadata__, document, self._state.visible, strict=strict)

    def _require_filter(self, operation: str) -> Document:
        filter = self._filter()
        if not filter:
            raise UsageError(
                f"{operation}() requires a filter; call where() first",
                operation=operation,
                context={"collection": self.__metadata__.collection},
            )
        return filter

    async def first(self, session: Session = None) -> Optional[Document]:
        """Fetch the first matching document, or None."""
        self._state.cardinality = Cardinality.SINGLE
        document = await self._executor.find_one(
            self._filter(),
            rename_projection(self.__metadata__, self._state.projection),
            sort=self._sort(),
            skip=self._state.skip,
            session=session,
        )
        return self._present(document)

    async def get(self, session: Session = None) -> List[Document]:
        """Fetch every matching document."""
        documents = await self._executor.find(
            self._filter(),
            rename_projection(self.__metadata__, self._state.projection),
            sort=self._sort(),
            skip=self._state.skip,
            limit=self._state.limit,
            session=session,
        )
        return [self._present(document) for document in documents]

    async def cursor(self, session: Session = None) -> AsyncIterator[Document]:
        """Iterate over matching documents as they arrive."""
        async for document in self._executor.iterate(
            self._filter(),
            rename_projection(self.__metadata__, self._state.projection),
            sort=self._sort(),
            skip=self._state.skip,
            limit=self._state.limit,
            session=session,
        ):
            yield self._present(document)

    async def count(self, session: Session = None) -> int:
        return await self._executor.count_documents(
            self._filter(), skip=self._state.skip, limit=self._state.limit, session=session
        )

    async def distinct(self, field: str, session: Session = None) -> List[Any]:
        metadata = self.__metadata__
        if field in metadata.hidden_fields and field not in self._state.visible:
            raise UsageError(
                f"distinct() on hidden field '{field}' requires visible('{field}')",
                operation="distinct",
            )
        return await self._executor.distinct(
            metadata.db_name(field), self._filter(), session=session
        )

    async def aggregate(
        self, pipeline: Sequence[Mapping[str, Any]], session: Session = None
    ) -> List[Document]:
        """
        Run an aggregation pipeline as given (the accumulated filter is not
        applied). Results are masked; computed keys pass through.
        """
        documents = await self._executor.aggregate(list(pipeline), session=session)
        return [self._present(document, strict=False) for document in documents]

    async def create(self, session: Session = None) -> InsertOneResult:
        """Insert the instance's field values and record the generated _id."""
        metadata = self.__metadata__
        document = stamp_create(metadata, self.to_document())
        result = await self._executor.insert_one(document, session=session)
        document[ID_FIELD] = result.inserted_id
        self._values.update(apply_mask(metadata, document, visible=metadata.hidden_fields))
        await self._finished("create", {}, document, session)
        return result

    async def create_doc(self, document: Mapping[str, Any], session: Session = None) -> InsertOneResult:
        """Insert a document keyed by attribute names, independent of instance values."""
        metadata = self.__metadata__
        stored = stamp_create(metadata, to_storage(metadata, document))
        result = await self._executor.insert_one(stored, session=session)
        await self._finished("create", {}, stored, session)
        return result

    async def create_many(
        self, documents: Iterable[Mapping[str, Any]], session: Session = None
    ) -> InsertManyResult:
        metadata = self.__metadata__
        now = utc_now()
        stored = [stamp_create(metadata, to_storage(metadata, d), now) for d in documents]
        if not stored:
            raise UsageError("create_many() requires at least one document", operation="create_many")
        result = await self._executor.insert_many(stored, session=session)
        await self._finished("create_many", {}, {"documents": stored}, session)
        return result

    async def update(self, patch: Mapping[str, Any], session: Session = None) -> WriteOutcome:
        """
        Apply `patch` to the matching document(s).

        A plain document is applied with $set; operator documents ($inc,
        $push, ...) are sent as given apart from field renaming. updated_at is
        always refreshed; with upsert() a created document also gets created_at.

        Raises:
            UsageError: If no filter was given or the patch is empty
        """
        metadata = self.__metadata__
        filter = self._require_filter("update")
        if not patch:
            raise UsageError("update() requires a non-empty patch", operation="update")
        update = stamp_update(metadata, rename_update(metadata, patch), upsert=self._state.upsert)

        if self._state.is_multi:
            result = await self._executor.update_many(
                filter, update, upsert=self._state.upsert, session=session
            )
            outcome = WriteOutcome(
                operation="update_many",
                affected=result.matched_count,
                upserted_id=result.upserted_id,
            )
            await self._finished(
                "update_many", {"modified_count": result.modified_count}, update, session
            )
            return outcome

        previous = await self._executor.find_one_and_update(
            filter, update, upsert=self._state.upsert, sort=self._sort(), session=session
        )
        outcome = WriteOutcome(
            operation="find_one_and_update",
            affected=1 if previous is not None else 0,
            document=self._present(previous),
        )
        await self._finished("update", previous or {}, update, session)
        return outcome

    async def delete(self, session: Session = None) -> WriteOutcome:
        """
        Delete the matching document, or every matching document after all().

        Raises:
            UsageError: If no filter was given and all() was not called
        """
        if self._state.is_multi:
            result = await self._executor.delete_many(self._filter(), session=session)
            await self._finished(
                "delete_many", {"deleted_count": result.deleted_count}, {}, session
            )
            return WriteOutcome(operation="delete_many", affected=result.deleted_count)

        filter = self._require_filter("delete")
        previous = await self._executor.find_one_and_delete(
            filter, sort=self._sort(), session=session
        )
        await self._finished("delete", previous or {}, {}, session)
        return WriteOutcome(
            operation="find_one_and_delete",
            affected=1 if previous is not None else 0,
            document=self._present(previous),
        )


def new_model(model_cls: Type[M], db: AsyncIOMotorDatabase, req: Optional[Any] = None) -> M:
    """Create an instance of `model_cls` bound to `db`."""
    return model_cls.new_model(db, req)
