"""
Document Store Tables Migration Script

Creates the table backing the document store from database.document_models:
- documents (collection, doc_id, data JSONB) with a GIN index on data

Run: python create_document_tables.py
"""

import asyncio
from pathlib import Path
from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

from database.connection import get_engine, dispose_engine
from database.document_models import DocumentDB


async def create_tables():
    """Create the documents table and its indexes if they do not exist."""
    table = DocumentDB.__table__

    async with get_engine().begin() as conn:
        await conn.run_sync(table.create, checkfirst=True)
        print(f"✓ Created {table.name}")
        for index in table.indexes:
            print(f"✓ Created {index.name}")

    await dispose_engine()
    print("\n✅ Document store tables ready")


if __name__ == "__main__":
    asyncio.run(create_tables())
