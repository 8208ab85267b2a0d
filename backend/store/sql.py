"""
SQL Document Store

DocumentStore backed by a single PostgreSQL table of JSONB documents:

    documents(collection, doc_id, data JSONB, created_at, updated_at)

- query() filters with `data -> :field = :value::jsonb`, so numbers, booleans
  and strings compare with their JSON types
- atomic_batch() merges field changes with `data || :changes` inside one
  transaction and rolls everything back if any target row is missing

Each operation opens its own session from the injected session factory.
"""

import json
import logging
from typing import Any, List, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from store.base import (
    Document,
    DocumentNotFoundError,
    DocumentRef,
    DocumentStore,
    DocumentUpdate,
    StoreError,
)

logger = logging.getLogger(__name__)

DOCUMENTS_TABLE = "documents"


def _load(data: Any) -> dict:
    # asyncpg hands JSONB back as text unless a codec is registered
    if isinstance(data, (str, bytes)):
        return json.loads(data)
    return dict(data or {})


class SqlDocumentStore(DocumentStore):
    """
    Document store over an async SQLAlchemy session factory.

    Args:
        session_factory: Callable returning an AsyncSession context manager
            (e.g. database.connection.get_session_factory())
    """

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def get(self, ref: DocumentRef) -> Optional[Document]:
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    text(f"""
                        SELECT doc_id, data FROM {DOCUMENTS_TABLE}
                        WHERE collection = :collection AND doc_id = :doc_id
                    """),
                    {"collection": ref.collection, "doc_id": ref.id}
                )
                row = result.fetchone()
        except SQLAlchemyError as e:
            logger.error(f"Error reading {ref.path}: {e}")
            raise StoreError(f"Failed to read {ref.path}") from e

        if not row:
            return None
        return Document(ref=ref, data=_load(row.data))

    async def query(self, collection: str, field: str, value: Any) -> List[Document]:
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    text(f"""
                        SELECT doc_id, data FROM {DOCUMENTS_TABLE}
                        WHERE collection = :collection
                          AND data -> :field = CAST(:value AS jsonb)
                        ORDER BY doc_id
                    """),
                    {"collection": collection, "field": field, "value": json.dumps(value, default=str)}
                )
                rows = result.fetchall()
        except SQLAlchemyError as e:
            logger.error(f"Error querying {collection} where {field} == {value!r}: {e}")
            raise StoreError(f"Failed to query {collection}") from e

        return [
            Document(ref=DocumentRef(collection, row.doc_id), data=_load(row.data))
            for row in rows
        ]

    async def atomic_batch(self, updates: List[DocumentUpdate]) -> int:
        if not updates:
            return 0

        async with self.session_factory() as db:
            try:
                for update in updates:
                    result = await db.execute(
                        text(f"""
                            UPDATE {DOCUMENTS_TABLE}
                            SET data = data || CAST(:changes AS jsonb),
                                updated_at = NOW()
                            WHERE collection = :collection AND doc_id = :doc_id
                        """),
                        {
                            "collection": update.ref.collection,
                            "doc_id": update.ref.id,
                            "changes": json.dumps(update.changes, default=str)
                        }
                    )
                    if result.rowcount != 1:
                        raise DocumentNotFoundError(update.ref)

                await db.commit()
            except DocumentNotFoundError:
                await db.rollback()
                raise
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error(f"Batch of {len(updates)} update(s) failed: {e}")
                raise StoreError("Failed to commit batch") from e

        return len(updates)
