from graph_er.storage.database import Database, create_database_engine
from graph_er.storage.sql import SqlAuditStore, SqlGraphStore


def open_stores(database_url: str, echo: bool = False) -> tuple[SqlGraphStore, SqlAuditStore]:
    """Connect to ``database_url``, create missing tables and return both stores on one engine."""
    database = Database.from_url(database_url, echo=echo)
    database.ensure_schema()
    return SqlGraphStore(database), SqlAuditStore(database)


__all__ = [
    "Database",
    "SqlAuditStore",
    "SqlGraphStore",
    "create_database_engine",
    "open_stores",
]
