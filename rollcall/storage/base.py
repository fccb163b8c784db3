"""
Document store protocol.

Entity modules talk to storage only through this protocol, so the same
handlers run against the in-memory store (tests, development) and MongoDB.

Documents are plain dicts keyed by "_id" (a string). Queries are equality
matches on top-level fields; a value of None also matches a missing field.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

Document = dict[str, Any]
Query = dict[str, Any]


class DuplicateKeyError(Exception):
    """Insert or update would violate a unique field."""

    def __init__(self, collection: str, field: str, value: Any = None):
        self.collection = collection
        self.field = field
        self.value = value
        super().__init__(f"Duplicate value for {collection}.{field}")


@runtime_checkable
class DocumentStore(Protocol):
    """Async document storage used by the entity modules."""

    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def ensure_unique(self, collection: str, field: str) -> None:
        """Declare a unique field on a collection."""
        ...

    async def insert_one(self, collection: str, document: Document) -> Document:
        """Insert a document, assigning "_id" if absent. Returns the stored copy."""
        ...

    async def find_one(self, collection: str, query: Query) -> Document | None: ...

    async def find(
        self,
        collection: str,
        query: Query,
        *,
        skip: int = 0,
        limit: int = 0,
        sort: str | None = None,
    ) -> list[Document]: ...

    async def count(self, collection: str, query: Query) -> int: ...

    async def update_one(
        self, collection: str, query: Query, changes: Document
    ) -> Document | None:
        """Set fields on the first match. Returns the updated document or None."""
        ...

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
        """
        Atomically add amount to a numeric field on the first match.

        The update only applies while the new value stays <= the document's
        ceiling_field and >= floor. Returns the updated document, or None when
        nothing matched or a bound would be crossed.
        """
        ...

    async def delete_one(self, collection: str, query: Query) -> bool: ...
