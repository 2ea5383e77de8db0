"""
Integration tests for Model with real MongoDB.

Covers index synchronization, visibility, timestamps and the CRUD terminals
end to end.
"""

import asyncio

import pytest
from pymongo.errors import DuplicateKeyError

from mdb_model import Field, Model, QueryExecutionError, UsageError


class User(Model, collection="user"):
    name = Field()
    phone = Field(asc=True, unique=True)
    age = Field(desc=True, default=0)
    password = Field(hidden=True, name="pswd")


class Article(Model, collection="article"):
    title = Field(text="english")
    body = Field(text="english")
    slug = Field(unique=True)


async def create_smko(db):
    user = await User.open(db)
    user.fill(name="Smko", phone="123456789", age=3, password="1234")
    await user.create()
    return user


@pytest.mark.integration
@pytest.mark.asyncio
class TestIndexSync:
    """Index synchronization against a real collection."""

    async def test_declared_indexes_created(self, real_mongo_db):
        report = await User.sync_indexes(real_mongo_db)

        assert sorted(report.created) == ["age_-1", "phone_1"]
        indexes = {
            idx["name"]: idx async for idx in real_mongo_db.user.list_indexes()
        }
        assert indexes["phone_1"]["unique"] is True
        assert "_id_" in indexes

    async def test_sync_is_idempotent(self, real_mongo_db):
        await User.sync_indexes(real_mongo_db)
        report = await User.sync_indexes(real_mongo_db)

        assert report.created == []
        assert sorted(report.existing) == ["age_-1", "phone_1"]
        assert not report.changed

    async def test_text_fields_share_one_index(self, real_mongo_db):
        report = await Article.sync_indexes(real_mongo_db)
        assert "title_text_body_text" in report.created

        again = await Article.sync_indexes(real_mongo_db)
        assert again.created == []

    async def test_unique_index_enforced(self, real_mongo_db):
        await create_smko(real_mongo_db)
        duplicate = User.new_model(real_mongo_db).fill(name="Other", phone="123456789")

        with pytest.raises(QueryExecutionError) as exc_info:
            await duplicate.create()
        assert isinstance(exc_info.value.__cause__, DuplicateKeyError)

    async def test_drop_undeclared(self, real_mongo_db):
        await User.sync_indexes(real_mongo_db)
        await real_mongo_db.user.create_index("name", name="name_1")

        dropped = await User.drop_undeclared_indexes(real_mongo_db)

        assert dropped == ["name_1"]
        names = [idx["name"] async for idx in real_mongo_db.user.list_indexes()]
        assert sorted(names) == ["_id_", "age_-1", "phone_1"]


@pytest.mark.integration
@pytest.mark.asyncio
class TestVisibility:
    async def test_hidden_field_stored_under_db_name(self, real_mongo_db):
        user = await create_smko(real_mongo_db)

        raw = await real_mongo_db.user.find_one({"_id": user.id})
        assert raw["pswd"] == "1234"
        assert "password" not in raw

    async def test_hidden_field_masked_unless_visible(self, real_mongo_db):
        await create_smko(real_mongo_db)
        users = User.new_model(real_mongo_db)

        masked = await users.where({"name": "Smko"}).first()
        assert "password" not in masked
        assert masked["phone"] == "123456789"

        revealed = await users.visible("password").first()
        assert revealed["password"] == "1234"

        users.reset()
        assert "password" not in await users.where({"name": "Smko"}).first()

    async def test_filter_on_hidden_field_renamed(self, real_mongo_db):
        await create_smko(real_mongo_db)
        found = await User.new_model(real_mongo_db).where({"password": "1234"}).get()
        assert [doc["name"] for doc in found] == ["Smko"]


@pytest.mark.integration
@pytest.mark.asyncio
class TestTimestamps:
    async def test_create_sets_equal_timestamps(self, real_mongo_db):
        user = await create_smko(real_mongo_db)
        raw = await real_mongo_db.user.find_one({"_id": user.id})
        assert raw["created_at"] == raw["updated_at"]

    async def test_instance_timestamps_match_stored(self, real_mongo_db):
        user = await create_smko(real_mongo_db)

        fetched = await User.new_model(real_mongo_db).where({"name": "Smko"}).first()

        assert user.created_at == fetched["created_at"]
        assert user.updated_at == fetched["updated_at"]
        assert not user.created_at < fetched["created_at"]

    async def test_update_advances_updated_at(self, real_mongo_db):
        user = await create_smko(real_mongo_db)
        before = await real_mongo_db.user.find_one({"_id": user.id})
        await asyncio.sleep(0.01)

        outcome = await User.new_model(real_mongo_db).where({"name": "Smko"}).update(
            {"$inc": {"age": 1}}
        )

        after = await real_mongo_db.user.find_one({"_id": user.id})
        assert outcome.affected == 1
        assert outcome.document["age"] == 3
        assert after["age"] == 4
        assert after["created_at"] == before["created_at"]
        assert after["updated_at"] > before["updated_at"]

    async def test_upsert_sets_created_at(self, real_mongo_db):
        outcome = await (
            User.new_model(real_mongo_db)
            .where({"phone": "555"})
            .upsert()
            .update({"name": "New"})
        )

        assert outcome.affected == 0
        raw = await real_mongo_db.user.find_one({"phone": "555"})
        assert raw["name"] == "New"
        assert raw["created_at"] == raw["updated_at"]


@pytest.mark.integration
@pytest.mark.asyncio
class TestCrud:
    async def test_reads(self, real_mongo_db):
        users = User.new_model(real_mongo_db)
        await users.create_many(
            [
                {"name": "A", "phone": "1", "age": 30},
                {"name": "B", "phone": "2", "age": 20},
                {"name": "C", "phone": "3", "age": 10},
            ]
        )

        ordered = await users.sort("age").get()
        assert [doc["name"] for doc in ordered] == ["C", "B", "A"]

        users.reset()
        page = await users.sort("age", -1).skip(1).limit(1).get()
        assert [doc["name"] for doc in page] == ["B"]

        users.reset()
        assert await users.where({"age": {"$gte": 20}}).count() == 2
        assert sorted(await users.reset().distinct("name")) == ["A", "B", "C"]

        streamed = [doc["name"] async for doc in users.reset().sort("name").cursor()]
        assert streamed == ["A", "B", "C"]

    async def test_update_and_delete_require_filter(self, real_mongo_db):
        await create_smko(real_mongo_db)
        users = User.new_model(real_mongo_db)

        with pytest.raises(UsageError):
            await users.update({"age": 5})
        with pytest.raises(UsageError):
            await users.delete()
        assert await real_mongo_db.user.count_documents({}) == 1

    async def test_delete_many_with_filter(self, real_mongo_db):
        users = User.new_model(real_mongo_db)
        await users.create_many(
            [
                {"name": "A", "phone": "1", "age": 1},
                {"name": "B", "phone": "2", "age": 1},
                {"name": "C", "phone": "3", "age": 2},
            ]
        )

        outcome = await users.all().where({"age": 1}).delete()

        assert outcome.affected == 2
        assert await real_mongo_db.user.count_documents({}) == 1

    async def test_single_delete_returns_masked_document(self, real_mongo_db):
        await create_smko(real_mongo_db)

        outcome = await User.new_model(real_mongo_db).where({"name": "Smko"}).delete()

        assert outcome.affected == 1
        assert outcome.document["name"] == "Smko"
        assert "password" not in outcome.document
        assert await real_mongo_db.user.count_documents({}) == 0

    async def test_aggregate_keeps_computed_keys(self, real_mongo_db):
        await create_smko(real_mongo_db)

        results = await User.new_model(real_mongo_db).aggregate(
            [{"$group": {"_id": None, "total": {"$sum": "$age"}}}]
        )

        assert results == [{"_id": None, "total": 3}]


@pytest.mark.integration
@pytest.mark.asyncio
class TestSessions:
    async def test_session_forwarded(self, real_mongo_client, real_mongo_db):
        await User.sync_indexes(real_mongo_db)
        users = User.new_model(real_mongo_db)

        async with await real_mongo_client.start_session() as session:
            await users.create_doc({"name": "S", "phone": "9"}, session=session)
            found = await users.where({"phone": "9"}).first(session=session)

        assert found["name"] == "S"
