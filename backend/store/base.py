"""
Document Store Capability

The reconciliation core never talks to a database handle directly. It is
given a DocumentStore that supports exactly two operations:

- query(collection, field, value): equality-filtered read of a collection
- atomic_batch(updates): all-or-nothing multi-document field update

Implementations:
- store.memory.InMemoryDocumentStore (tests, local tooling)
- store.sql.SqlDocumentStore (PostgreSQL JSONB documents via SQLAlchemy)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


# ==================== ERRORS ====================

class StoreError(Exception):
    """Infrastructure failure while reading from or writing to the store."""
    pass


class DocumentNotFoundError(StoreError):
    """Raised when a batch targets a document that does not exist."""

    def __init__(self, ref: "DocumentRef"):
        super().__init__(f"Document not found: {ref.path}")
        self.ref = ref


# ==================== VALUE TYPES ====================

@dataclass(frozen=True)
class DocumentRef:
    """Address of a single document."""
    collection: str
    id: str

    @property
    def path(self) -> str:
        return f"{self.collection}/{self.id}"


@dataclass
class Document:
    """A document snapshot: its reference plus a copy of its data."""
    ref: DocumentRef
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return self.ref.id


@dataclass
class DocumentUpdate:
    """Shallow field changes to apply to one document."""
    ref: DocumentRef
    changes: Dict[str, Any]


# ==================== CAPABILITY ====================

class DocumentStore(ABC):
    """
    Store-access capability injected into the reconciliation services.
    """

    @abstractmethod
    async def query(self, collection: str, field: str, value: Any) -> List[Document]:
        """
        Return every document in `collection` whose `field` equals `value`.

        Raises:
            StoreError: If the underlying store cannot be read
        """

    @abstractmethod
    async def atomic_batch(self, updates: List[DocumentUpdate]) -> int:
        """
        Apply all updates as a single indivisible unit.

        Either every update is applied or none is. An empty list is a no-op.

        Returns:
            Number of documents written

        Raises:
            DocumentNotFoundError: If any target document is missing
            StoreError: If the batch could not be committed
        """

    @abstractmethod
    async def get(self, ref: DocumentRef) -> Optional[Document]:
        """Fetch a single document by reference, or None."""
