"""
Document Store Module

Store-access capability used by the reconciliation services.
"""

from store.base import (
    Document,
    DocumentNotFoundError,
    DocumentRef,
    DocumentStore,
    DocumentUpdate,
    StoreError,
)
from store.memory import InMemoryDocumentStore
from store.sql import SqlDocumentStore

__all__ = [
    'Document',
    'DocumentNotFoundError',
    'DocumentRef',
    'DocumentStore',
    'DocumentUpdate',
    'StoreError',
    'InMemoryDocumentStore',
    'SqlDocumentStore',
]
