"""
Unit tests for the index synchronizer.

Uses a mocked motor collection; see tests/integration for the same
behaviour against a real server.
"""

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo.errors import OperationFailure

from mdb_model.exceptions import IndexSyncError
from mdb_model.fields import Field
from mdb_model.indexes import IndexSynchronizer, sync_indexes
from mdb_model.metadata import build_metadata
from mdb_model.observability import get_logging_context, get_metrics_collector


@pytest.fixture
def metadata():
    return build_metadata(
        "User",
        "user",
        {
            "name": Field(),
            "phone": Field(asc=True, unique=True),
            "age": Field(desc=True),
            "password": Field(hidden=True, name="pswd"),
        },
    )


@pytest.mark.asyncio
class TestSync:
    """Test IndexSynchronizer.sync."""

    async def test_creates_missing_indexes(self, mock_collection, metadata):
        report = await IndexSynchronizer(mock_collection, metadata).sync()

        assert report.created == ["phone_1", "age_-1"]
        assert report.existing == []
        assert report.changed
        mock_collection.create_index.assert_any_await([("phone", 1)], name="phone_1", unique=True)
        mock_collection.create_index.assert_any_await([("age", -1)], name="age_-1")
        assert get_metrics_collector().get_operation_count("model.sync_indexes") == 1

    async def test_logs_carry_model_context(self, mock_collection, metadata, caplog):
        with caplog.at_level(logging.INFO, logger="mdb_model.indexes.synchronizer"):
            await IndexSynchronizer(mock_collection, metadata).sync()

        created = [r for r in caplog.records if r.getMessage().startswith("[user] Created index")]
        assert [r.index_name for r in created] == ["phone_1", "age_-1"]
        assert all(r.model_name == "User" and r.collection == "user" for r in created)
        assert "model_name" not in get_logging_context()

    async def test_skips_equivalent_indexes(self, mock_collection, metadata, id_index, make_cursor):
        mock_collection.list_indexes.return_value = make_cursor(
            [
                id_index,
                {"key": {"phone": 1}, "name": "custom_phone", "unique": True},
                {"key": {"age": -1}, "name": "age_-1"},
            ]
        )

        report = await IndexSynchronizer(mock_collection, metadata).sync()

        assert report.created == []
        assert report.existing == ["custom_phone", "age_-1"]
        assert not report.changed
        mock_collection.create_index.assert_not_awaited()

    async def test_uniqueness_difference_is_not_equivalent(
        self, mock_collection, metadata, id_index, make_cursor
    ):
        mock_collection.list_indexes.return_value = make_cursor(
            [id_index, {"key": {"phone": 1}, "name": "phone_1"}]
        )

        report = await IndexSynchronizer(mock_collection, metadata).sync()

        assert "phone_1" in report.created

    async def test_idempotent(self, mock_collection, metadata, id_index, make_cursor):
        present = [id_index]

        async def create_index(keys, **kwargs):
            present.append({"key": dict(keys), **kwargs})
            return kwargs["name"]

        mock_collection.list_indexes.side_effect = lambda: make_cursor(present)
        mock_collection.create_index.side_effect = create_index
        synchronizer = IndexSynchronizer(mock_collection, metadata)

        first = await synchronizer.sync()
        second = await synchronizer.sync()

        assert first.created == ["phone_1", "age_-1"]
        assert second.created == []
        assert sorted(second.existing) == ["age_-1", "phone_1"]
        assert mock_collection.create_index.await_count == 2

    async def test_failures_collected_after_all_attempts(self, mock_collection, metadata):
        async def create_index(keys, **kwargs):
            if kwargs["name"] == "phone_1":
                raise OperationFailure("E11000 duplicate key error")
            return kwargs["name"]

        mock_collection.create_index.side_effect = create_index

        with pytest.raises(IndexSyncError) as exc_info:
            await IndexSynchronizer(mock_collection, metadata).sync()

        error = exc_info.value
        assert list(error.failures) == ["phone_1"]
        assert "duplicate key" in error.failures["phone_1"]
        assert error.collection_name == "user"
        assert mock_collection.create_index.await_count == 2
        assert get_metrics_collector().get_error_count("model.sync_indexes") == 1

    async def test_listing_failure(self, mock_collection, metadata, make_cursor):
        mock_collection.list_indexes.return_value = make_cursor(
            error=OperationFailure("not authorized")
        )

        with pytest.raises(IndexSyncError, match="Failed to list indexes") as exc_info:
            await IndexSynchronizer(mock_collection, metadata).sync()
        assert isinstance(exc_info.value.__cause__, OperationFailure)

    async def test_no_declared_indexes(self, mock_collection):
        metadata = build_metadata("Log", "logs", {"line": Field()})
        report = await sync_indexes(mock_collection, metadata)
        assert not report.changed
        mock_collection.list_indexes.assert_not_called()


@pytest.mark.asyncio
class TestDropUndeclared:
    """Test IndexSynchronizer.drop_undeclared."""

    async def test_drops_only_undeclared(self, mock_collection, metadata, id_index, make_cursor):
        mock_collection.list_indexes.return_value = make_cursor(
            [
                id_index,
                {"key": {"phone": 1}, "name": "phone_1", "unique": True},
                {"key": {"email": 1}, "name": "email_1"},
                {"key": {"age": 1}, "name": "age_1"},
            ]
        )

        dropped = await IndexSynchronizer(mock_collection, metadata).drop_undeclared()

        assert dropped == ["email_1", "age_1"]
        assert [c.args[0] for c in mock_collection.drop_index.await_args_list] == [
            "email_1",
            "age_1",
        ]

    async def test_compound_indexes_kept(self, mock_collection, metadata, id_index, make_cursor):
        mock_collection.list_indexes.return_value = make_cursor(
            [id_index, {"key": {"name": 1, "age": -1}, "name": "name_1_age_-1"}]
        )

        assert await IndexSynchronizer(mock_collection, metadata).drop_undeclared() == []
        mock_collection.drop_index.assert_not_awaited()

    async def test_sync_never_drops(self, mock_collection, metadata, id_index, make_cursor):
        mock_collection.list_indexes.return_value = make_cursor(
            [id_index, {"key": {"email": 1}, "name": "email_1"}]
        )

        await IndexSynchronizer(mock_collection, metadata).sync()

        mock_collection.drop_index.assert_not_awaited()

    async def test_drop_failure(self, mock_collection, metadata, id_index, make_cursor):
        mock_collection.list_indexes.return_value = make_cursor(
            [id_index, {"key": {"email": 1}, "name": "email_1"}]
        )
        mock_collection.drop_index = AsyncMock(side_effect=OperationFailure("locked"))

        with pytest.raises(IndexSyncError) as exc_info:
            await IndexSynchronizer(mock_collection, metadata).drop_undeclared()
        assert exc_info.value.failures == {"email_1": "locked"}


def test_plans_exposed(metadata):
    synchronizer = IndexSynchronizer(MagicMock(), metadata)
    assert [p.name for p in synchronizer.plans] == ["phone_1", "age_-1"]
