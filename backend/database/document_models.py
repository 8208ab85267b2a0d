"""
Document Store - SQLAlchemy Database Models

Bookings, trips and vehicles are stored as JSONB documents in one table,
addressed by (collection, doc_id).
"""

from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, Index, PrimaryKeyConstraint
from sqlalchemy.dialects.postgresql import JSONB

from database.connection import Base


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DocumentDB(Base):
    """A single document in a named collection."""
    __tablename__ = "documents"

    collection = Column(String(100), nullable=False)
    doc_id = Column(String(200), nullable=False)
    data = Column(JSONB, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    __table_args__ = (
        PrimaryKeyConstraint('collection', 'doc_id', name='pk_documents'),
        Index('ix_documents_data', 'data', postgresql_using='gin'),
    )
