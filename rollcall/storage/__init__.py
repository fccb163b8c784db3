"""
Rollcall Storage

DocumentStore protocol with in-memory and MongoDB (motor) backends.
"""

from .base import Document, DocumentStore, DuplicateKeyError, Query
from .memory import InMemoryDocumentStore

__all__ = [
    "Document",
    "DocumentStore",
    "DuplicateKeyError",
    "InMemoryDocumentStore",
    "Query",
]
