from .connection import get_engine, get_session_factory, init_db, dispose_engine, Base

# Import document models to ensure they are registered with Base
from .document_models import DocumentDB

__all__ = [
    'get_engine', 'get_session_factory', 'init_db', 'dispose_engine', 'Base',
    'DocumentDB',
]
