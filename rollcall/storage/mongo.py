"""MongoDB document store backed by motor."""

from __future__ import annotations

import logging
import uuid

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError as MongoDuplicateKeyError

from .base import Document, DuplicateKeyError, Query

logger = logging.getLogger(__name__)


def _duplicate_field(exc: MongoDuplicateKeyError) -> str:
    details = exc.details or {}
    key_value = details.get("keyValue") or {}
    return next(iter(key_value), "unknown")


class MongoDocumentStore:
    """
    DocumentStore over a MongoDB database.

    Usage:
        store = MongoDocumentStore("mongodb://localhost:27017", "rollcall")
        await store.connect()
        await store.insert_one("schools", {"name": "North", "code": "N1"})
    """

    def __init__(self, mongodb_url: str, database_name: str):
        self._mongodb_url = mongodb_url
        self._database_name = database_name
        self._client: AsyncIOMotorClient | None = None
        self._db = None

    async def connect(self) -> None:
        """Connect to MongoDB."""
        self._client = AsyncIOMotorClient(self._mongodb_url)
        self._db = self._client[self._database_name]
        logger.info(f"[mongo_store] Connected to MongoDB database: {self._database_name}")

    async def close(self) -> None:
        """Close MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._db = None

    async def _ensure_connected(self) -> None:
        if self._db is None:
            await self.connect()

    async def ensure_unique(self, collection: str, field: str) -> None:
        await self._ensure_connected()
        await self._db[collection].create_index(
            [(field, ASCENDING)],
            unique=True,
            partialFilterExpression={field: {"$exists": True}},
        )

    async def insert_one(self, collection: str, document: Document) -> Document:
        await self._ensure_connected()
        stored = {**document}
        stored.setdefault("_id", uuid.uuid4().hex)
        try:
            await self._db[collection].insert_one(stored)
        except MongoDuplicateKeyError as exc:
            raise DuplicateKeyError(collection, _duplicate_field(exc)) from exc
        return stored

    async def find_one(self, collection: str, query: Query) -> Document | None:
        await self._ensure_connected()
        return await self._db[collection].find_one(query)

    async def find(
        self,
        collection: str,
        query: Query,
        *,
        skip: int = 0,
        limit: int = 0,
        sort: str | None = None,
    ) -> list[Document]:
        await self._ensure_connected()
        cursor = self._db[collection].find(query)
        if sort:
            direction = DESCENDING if sort.startswith("-") else ASCENDING
            cursor = cursor.sort(sort.lstrip("-"), direction)
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)

        documents = []
        async for doc in cursor:
            documents.append(doc)
        return documents

    async def count(self, collection: str, query: Query) -> int:
        await self._ensure_connected()
        return await self._db[collection].count_documents(query)

    async def update_one(
        self, collection: str, query: Query, changes: Document
    ) -> Document | None:
        await self._ensure_connected()
        try:
            return await self._db[collection].find_one_and_update(
                query,
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
        except MongoDuplicateKeyError as exc:
            raise DuplicateKeyError(collection, _duplicate_field(exc)) from exc

    async def increment(
        self,
        collection: str,
        query: Query,
        field: str,
        amount: int = 1,
        *,
        ceiling_field: str | None = None,
        floor: int | None = None,
    ) -> Document | None:
        await self._ensure_connected()
        new_value = {"$add": [{"$ifNull": [f"${field}", 0]}, amount]}
        bounds = []
        if ceiling_field is not None:
            bounds.append({"$lte": [new_value, f"${ceiling_field}"]})
        if floor is not None:
            bounds.append({"$gte": [new_value, floor]})
        condition = {**query}
        if bounds:
            condition["$expr"] = {"$and": bounds}
        return await self._db[collection].find_one_and_update(
            condition,
            {"$inc": {field: amount}},
            return_document=ReturnDocument.AFTER,
        )

    async def delete_one(self, collection: str, query: Query) -> bool:
        await self._ensure_connected()
        result = await self._db[collection].delete_one(query)
        return result.deleted_count > 0
