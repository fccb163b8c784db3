"""
Tests for the in-memory document store.
"""
import pytest

from rollcall.storage import DocumentStore, DuplicateKeyError, InMemoryDocumentStore


class TestInMemoryDocumentStore:
    """Tests for InMemoryDocumentStore."""

    def test_satisfies_protocol(self, store):
        assert isinstance(store, DocumentStore)

    @pytest.mark.asyncio
    async def test_insert_assigns_id(self, store):
        doc = await store.insert_one("schools", {"name": "North"})

        assert doc["_id"]
        assert await store.find_one("schools", {"_id": doc["_id"]}) == doc

    @pytest.mark.asyncio
    async def test_returned_documents_are_copies(self, store):
        doc = await store.insert_one("schools", {"name": "North", "tags": ["a"]})
        doc["tags"].append("mutated")

        stored = await store.find_one("schools", {"_id": doc["_id"]})
        assert stored["tags"] == ["a"]

    @pytest.mark.asyncio
    async def test_none_matches_missing_field(self, store):
        await store.insert_one("users", {"username": "a"})

        assert await store.find_one("users", {"schoolId": None}) is not None

    @pytest.mark.asyncio
    async def test_unique_field(self, store):
        await store.ensure_unique("schools", "shortCode")
        await store.insert_one("schools", {"shortCode": "N1"})

        with pytest.raises(DuplicateKeyError) as exc_info:
            await store.insert_one("schools", {"shortCode": "N1"})
        assert exc_info.value.field == "shortCode"

    @pytest.mark.asyncio
    async def test_unique_field_on_update(self, store):
        await store.ensure_unique("users", "email")
        await store.insert_one("users", {"_id": "u1", "email": "a@example.com"})
        await store.insert_one("users", {"_id": "u2", "email": "b@example.com"})

        with pytest.raises(DuplicateKeyError):
            await store.update_one("users", {"_id": "u2"}, {"email": "a@example.com"})

        # Re-saving the same value on the same document is fine
        updated = await store.update_one("users", {"_id": "u1"}, {"email": "a@example.com"})
        assert updated["email"] == "a@example.com"

    @pytest.mark.asyncio
    async def test_find_with_sort_skip_limit(self, store):
        for i in range(5):
            await store.insert_one("items", {"n": i, "kind": "x"})

        page = await store.find("items", {"kind": "x"}, skip=1, limit=2, sort="-n")

        assert [d["n"] for d in page] == [3, 2]
        assert await store.count("items", {"kind": "x"}) == 5

    @pytest.mark.asyncio
    async def test_update_missing_returns_none(self, store):
        assert await store.update_one("items", {"_id": "nope"}, {"a": 1}) is None

    @pytest.mark.asyncio
    async def test_increment_stops_at_ceiling(self, store):
        room = await store.insert_one("classrooms", {"capacity": 2, "enrolledCount": 1})
        query = {"_id": room["_id"]}

        updated = await store.increment("classrooms", query, "enrolledCount", 1, ceiling_field="capacity")
        assert updated["enrolledCount"] == 2

        assert await store.increment("classrooms", query, "enrolledCount", 1, ceiling_field="capacity") is None
        stored = await store.find_one("classrooms", query)
        assert stored["enrolledCount"] == 2

    @pytest.mark.asyncio
    async def test_increment_respects_floor(self, store):
        room = await store.insert_one("classrooms", {"enrolledCount": 1})
        query = {"_id": room["_id"]}

        assert (await store.increment("classrooms", query, "enrolledCount", -1, floor=0))["enrolledCount"] == 0
        assert await store.increment("classrooms", query, "enrolledCount", -1, floor=0) is None

    @pytest.mark.asyncio
    async def test_increment_missing_field_starts_at_zero(self, store):
        room = await store.insert_one("classrooms", {"capacity": 5})

        updated = await store.increment("classrooms", {"_id": room["_id"]}, "enrolledCount")

        assert updated["enrolledCount"] == 1

    @pytest.mark.asyncio
    async def test_increment_no_match_returns_none(self, store):
        assert await store.increment("classrooms", {"_id": "nope"}, "enrolledCount") is None

    @pytest.mark.asyncio
    async def test_delete_one(self, store):
        doc = await store.insert_one("items", {"a": 1})

        assert await store.delete_one("items", {"_id": doc["_id"]}) is True
        assert await store.delete_one("items", {"_id": doc["_id"]}) is False
        assert await store.count("items", {}) == 0

    @pytest.mark.asyncio
    async def test_close_clears_data(self):
        store = InMemoryDocumentStore()
        await store.insert_one("items", {"a": 1})

        await store.close()

        assert await store.count("items", {}) == 0
