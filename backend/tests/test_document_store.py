"""
Unit Tests for the Document Store

Tests both DocumentStore implementations:
- InMemoryDocumentStore: equality queries, copy semantics, batch atomicity
- SqlDocumentStore: SQL issued, JSON decoding, commit/rollback behaviour

Run with: pytest tests/test_document_store.py -v
"""

import json

import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.exc import SQLAlchemyError

from store.base import DocumentNotFoundError, DocumentRef, DocumentUpdate, StoreError
from store.sql import SqlDocumentStore
from database.document_models import DocumentDB


class TestInMemoryDocumentStore:
    """Test the dict-backed store used by the service tests."""

    @pytest.mark.asyncio
    async def test_query_filters_on_equality(self, store):
        store.put("trips", "T1", {"id": "T1", "status": "Booking"})
        store.put("trips", "T2", {"id": "T2", "status": "Departed"})
        store.put("trips", "T3", {"id": "T3"})

        docs = await store.query("trips", "status", "Booking")

        assert [d.id for d in docs] == ["T1"]
        assert docs[0].ref == DocumentRef("trips", "T1")

    @pytest.mark.asyncio
    async def test_query_unknown_collection_is_empty(self, store):
        assert await store.query("nowhere", "id", "x") == []

    @pytest.mark.asyncio
    async def test_reads_are_copies(self, store):
        store.put("vehicles", "V1", {"id": "V1", "seats": [{"number": 1, "booked": True}]})

        doc = await store.get(DocumentRef("vehicles", "V1"))
        doc.data["seats"][0]["booked"] = False

        again = await store.get(DocumentRef("vehicles", "V1"))
        assert again.data["seats"][0]["booked"] is True

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, store):
        assert await store.get(DocumentRef("vehicles", "nope")) is None

    @pytest.mark.asyncio
    async def test_atomic_batch_merges_fields(self, store):
        store.put("bookings", "b1", {"id": "b1", "status": "Active", "tripId": "T1"})

        written = await store.atomic_batch([
            DocumentUpdate(DocumentRef("bookings", "b1"), {"status": "Archived"})
        ])

        doc = await store.get(DocumentRef("bookings", "b1"))
        assert written == 1
        assert doc.data == {"id": "b1", "status": "Archived", "tripId": "T1"}
        assert store.write_count == 1

    @pytest.mark.asyncio
    async def test_atomic_batch_is_all_or_nothing(self, store):
        store.put("bookings", "b1", {"status": "Active"})

        with pytest.raises(DocumentNotFoundError) as exc_info:
            await store.atomic_batch([
                DocumentUpdate(DocumentRef("bookings", "b1"), {"status": "Archived"}),
                DocumentUpdate(DocumentRef("bookings", "missing"), {"status": "Archived"}),
            ])

        doc = await store.get(DocumentRef("bookings", "b1"))
        assert doc.data["status"] == "Active"
        assert store.batches == []
        assert exc_info.value.ref.path == "bookings/missing"

    @pytest.mark.asyncio
    async def test_empty_batch_is_noop(self, store):
        assert await store.atomic_batch([]) == 0
        assert store.batches == []


class TestSqlDocumentStore:
    """Test the PostgreSQL JSONB store against a mocked session."""

    @pytest.fixture
    def mock_db(self):
        """Create a mock database session."""
        db = AsyncMock()
        db.execute = AsyncMock()
        db.commit = AsyncMock()
        db.rollback = AsyncMock()
        return db

    @pytest.fixture
    def session_factory(self, mock_db):
        factory = MagicMock()
        factory.return_value.__aenter__.return_value = mock_db
        return factory

    @pytest.fixture
    def sql_store(self, session_factory):
        return SqlDocumentStore(session_factory)

    @pytest.mark.asyncio
    async def test_query_decodes_rows(self, sql_store, mock_db):
        row = MagicMock(doc_id="T1", data=json.dumps({"id": "T1", "vehicleId": "V1"}))
        mock_result = MagicMock()
        mock_result.fetchall.return_value = [row]
        mock_db.execute.return_value = mock_result

        docs = await sql_store.query("trips", "vehicleId", "V1")

        assert len(docs) == 1
        assert docs[0].ref == DocumentRef("trips", "T1")
        assert docs[0].data == {"id": "T1", "vehicleId": "V1"}

        params = mock_db.execute.call_args[0][1]
        assert params == {"collection": "trips", "field": "vehicleId", "value": '"V1"'}

    @pytest.mark.asyncio
    async def test_query_accepts_decoded_jsonb(self, sql_store, mock_db):
        row = MagicMock(doc_id="V1", data={"id": "V1", "seats": []})
        mock_result = MagicMock()
        mock_result.fetchall.return_value = [row]
        mock_db.execute.return_value = mock_result

        docs = await sql_store.query("vehicles", "id", "V1")

        assert docs[0].data == {"id": "V1", "seats": []}

    @pytest.mark.asyncio
    async def test_query_failure_raises_store_error(self, sql_store, mock_db):
        mock_db.execute.side_effect = SQLAlchemyError("connection refused")

        with pytest.raises(StoreError):
            await sql_store.query("trips", "status", "Booking")

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, sql_store, mock_db):
        mock_result = MagicMock()
        mock_result.fetchone.return_value = None
        mock_db.execute.return_value = mock_result

        assert await sql_store.get(DocumentRef("vehicles", "V9")) is None

    @pytest.mark.asyncio
    async def test_atomic_batch_commits_once(self, sql_store, mock_db):
        mock_result = MagicMock()
        mock_result.rowcount = 1
        mock_db.execute.return_value = mock_result

        written = await sql_store.atomic_batch([
            DocumentUpdate(DocumentRef("bookings", "b1"), {"status": "Archived"}),
            DocumentUpdate(DocumentRef("bookings", "b2"), {"status": "Archived"}),
        ])

        assert written == 2
        assert mock_db.execute.await_count == 2
        mock_db.commit.assert_awaited_once()
        mock_db.rollback.assert_not_awaited()

        params = mock_db.execute.call_args_list[0][0][1]
        assert params["doc_id"] == "b1"
        assert json.loads(params["changes"]) == {"status": "Archived"}

    @pytest.mark.asyncio
    async def test_atomic_batch_rolls_back_on_missing_document(self, sql_store, mock_db):
        found, missing = MagicMock(rowcount=1), MagicMock(rowcount=0)
        mock_db.execute.side_effect = [found, missing]

        with pytest.raises(DocumentNotFoundError):
            await sql_store.atomic_batch([
                DocumentUpdate(DocumentRef("bookings", "b1"), {"status": "Archived"}),
                DocumentUpdate(DocumentRef("bookings", "gone"), {"status": "Archived"}),
            ])

        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_atomic_batch_wraps_database_errors(self, sql_store, mock_db):
        mock_db.commit.side_effect = SQLAlchemyError("deadlock detected")
        mock_db.execute.return_value = MagicMock(rowcount=1)

        with pytest.raises(StoreError):
            await sql_store.atomic_batch([
                DocumentUpdate(DocumentRef("vehicles", "V1"), {"seats": []})
            ])

        mock_db.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_empty_batch_opens_no_session(self, sql_store, session_factory):
        assert await sql_store.atomic_batch([]) == 0
        session_factory.assert_not_called()


class TestDocumentTable:
    """Test the ORM mapping the SQL store queries against."""

    def test_documents_keyed_by_collection_and_id(self):
        table = DocumentDB.__table__

        assert table.name == "documents"
        assert [c.name for c in table.primary_key.columns] == ["collection", "doc_id"]

    def test_data_has_gin_index(self):
        index = next(i for i in DocumentDB.__table__.indexes if i.name == "ix_documents_data")

        assert index.dialect_options["postgresql"]["using"] == "gin"
