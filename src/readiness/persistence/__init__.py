"""Readiness persistence module.

Provides PostgreSQL connectivity, repositories with in-memory fallbacks,
and Alembic migrations.
"""

from readiness.persistence.db import (
    DatabaseConfigError,
    DatabaseRole,
    begin_app_conn,
    get_database_url,
    get_engine,
    is_postgres_configured,
)

__all__ = [
    "DatabaseConfigError",
    "DatabaseRole",
    "begin_app_conn",
    "get_database_url",
    "get_engine",
    "is_postgres_configured",
]
