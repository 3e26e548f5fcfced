"""
Repository pattern over a document store.

Repository is the abstract interface; DocumentRepository implements it for
any StoreClient.
"""

from .base import Entity, Repository
from .document import DocumentRepository, UpsertStrategy

__all__ = ["Entity", "Repository", "DocumentRepository", "UpsertStrategy"]
