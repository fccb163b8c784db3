"""In-memory document store for tests and local development."""

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from collections import defaultdict
from typing import Any

from .base import Document, DuplicateKeyError, Query

logger = logging.getLogger(__name__)


def _matches(document: Document, query: Query) -> bool:
    return all(document.get(key) == value for key, value in query.items())


class InMemoryDocumentStore:
    """
    Dict-backed DocumentStore.

    Documents are deep-copied on the way in and out so callers never share
    state with the store.
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, Document]] = defaultdict(dict)
        self._unique: dict[str, set[str]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        logger.info("[memory_store] Using in-memory document store")

    async def close(self) -> None:
        self._collections.clear()

    async def ensure_unique(self, collection: str, field: str) -> None:
        self._unique[collection].add(field)

    def _check_unique(
        self, collection: str, candidate: Document, exclude_id: str | None = None
    ) -> None:
        for field in self._unique[collection]:
            value = candidate.get(field)
            if value is None:
                continue
            for doc_id, existing in self._collections[collection].items():
                if doc_id != exclude_id and existing.get(field) == value:
                    raise DuplicateKeyError(collection, field, value)

    async def insert_one(self, collection: str, document: Document) -> Document:
        async with self._lock:
            stored = copy.deepcopy(document)
            stored.setdefault("_id", uuid.uuid4().hex)
            if stored["_id"] in self._collections[collection]:
                raise DuplicateKeyError(collection, "_id", stored["_id"])
            self._check_unique(collection, stored)
            self._collections[collection][stored["_id"]] = stored
            return copy.deepcopy(stored)

    async def find_one(self, collection: str, query: Query) -> Document | None:
        for document in self._collections[collection].values():
            if _matches(document, query):
                return copy.deepcopy(document)
        return None

    async def find(
        self,
        collection: str,
        query: Query,
        *,
        skip: int = 0,
        limit: int = 0,
        sort: str | None = None,
    ) -> list[Document]:
        results = [d for d in self._collections[collection].values() if _matches(d, query)]
        if sort:
            reverse = sort.startswith("-")
            key = sort.lstrip("-")
            results.sort(key=lambda d: _sort_key(d.get(key)), reverse=reverse)
        results = results[skip:]
        if limit:
            results = results[:limit]
        return [copy.deepcopy(d) for d in results]

    async def count(self, collection: str, query: Query) -> int:
        return sum(1 for d in self._collections[collection].values() if _matches(d, query))

    async def update_one(
        self, collection: str, query: Query, changes: Document
    ) -> Document | None:
        async with self._lock:
            for doc_id, document in self._collections[collection].items():
                if _matches(document, query):
                    updated = {**document, **copy.deepcopy(changes)}
                    self._check_unique(collection, updated, exclude_id=doc_id)
                    self._collections[collection][doc_id] = updated
                    return copy.deepcopy(updated)
            return None

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
        async with self._lock:
            for document in self._collections[collection].values():
                if not _matches(document, query):
                    continue
                value = (document.get(field) or 0) + amount
                if ceiling_field is not None and value > document.get(ceiling_field, 0):
                    continue
                if floor is not None and value < floor:
                    continue
                document[field] = value
                return copy.deepcopy(document)
            return None

    async def delete_one(self, collection: str, query: Query) -> bool:
        async with self._lock:
            for doc_id, document in self._collections[collection].items():
                if _matches(document, query):
                    del self._collections[collection][doc_id]
                    return True
            return False


def _sort_key(value: Any) -> tuple[int, Any]:
    # None sorts first, like MongoDB
    return (0, "") if value is None else (1, value)
