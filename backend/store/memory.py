"""
In-memory Document Store

Dict-backed implementation of the DocumentStore capability. Used by the test
suite and for local runs without PostgreSQL.

Reads return deep copies so callers can never mutate stored state by accident.
A batch is validated in full before any change is applied.
"""

import copy
import logging
from typing import Any, Dict, List, Optional

from store.base import (
    Document,
    DocumentNotFoundError,
    DocumentRef,
    DocumentStore,
    DocumentUpdate,
)

logger = logging.getLogger(__name__)


class InMemoryDocumentStore(DocumentStore):

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        # Every committed batch, in order
        self.batches: List[List[DocumentUpdate]] = []

    def put(self, collection: str, doc_id: str, data: Dict[str, Any]) -> DocumentRef:
        """Create or replace a document."""
        self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(data)
        return DocumentRef(collection, doc_id)

    async def get(self, ref: DocumentRef) -> Optional[Document]:
        data = self._collections.get(ref.collection, {}).get(ref.id)
        if data is None:
            return None
        return Document(ref=ref, data=copy.deepcopy(data))

    async def query(self, collection: str, field: str, value: Any) -> List[Document]:
        documents = self._collections.get(collection, {})
        return [
            Document(ref=DocumentRef(collection, doc_id), data=copy.deepcopy(data))
            for doc_id, data in documents.items()
            if field in data and data[field] == value
        ]

    async def atomic_batch(self, updates: List[DocumentUpdate]) -> int:
        if not updates:
            return 0

        for update in updates:
            if update.ref.id not in self._collections.get(update.ref.collection, {}):
                raise DocumentNotFoundError(update.ref)

        for update in updates:
            target = self._collections[update.ref.collection][update.ref.id]
            target.update(copy.deepcopy(update.changes))

        self.batches.append(list(updates))
        logger.debug(f"Committed batch of {len(updates)} document update(s)")
        return len(updates)

    @property
    def write_count(self) -> int:
        return sum(len(batch) for batch in self.batches)
