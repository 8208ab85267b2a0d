"""
Shared fixtures for the reconciliation tests.
"""

import pytest

from store.memory import InMemoryDocumentStore


@pytest.fixture
def store():
    """Empty in-memory document store."""
    return InMemoryDocumentStore()
