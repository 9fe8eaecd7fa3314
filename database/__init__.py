"""
Database Package Initialization.

============================================================
ENGINE-OWNED PERSISTENCE LAYER
============================================================

Async SQLAlchemy persistence for every table the fraud engine
writes. Upstream platform data is never written here; it is
read through the data_sources repositories.

REQUIRED:
- Every write goes through session_scope (commit/rollback)
- Bulk writes go through write_in_batches (<=500 per commit)
- Every failure raises PersistenceError

============================================================
"""

from .engine import (
    Base,
    DEFAULT_DATABASE_URL,
    get_database_url,
    create_database_engine,
    create_session_factory,
    session_scope,
    import_all_models,
    verify_database_connection,
    create_all_tables,
    initialize_database,
)
from .batch import BatchWriteResult, write_in_batches


__all__ = [
    "Base",
    "DEFAULT_DATABASE_URL",
    "get_database_url",
    "create_database_engine",
    "create_session_factory",
    "session_scope",
    "import_all_models",
    "verify_database_connection",
    "create_all_tables",
    "initialize_database",
    "BatchWriteResult",
    "write_in_batches",
]
