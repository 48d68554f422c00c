"""Postgres connectivity for the readiness service.

Two roles, two URLs:
    READINESS_DATABASE_URL        runtime role used by repositories and stores
    READINESS_DATABASE_ADMIN_URL  owner role used by migrations

Postgres is optional. Without READINESS_DATABASE_URL the repository
factories pick in-memory implementations; code that explicitly asks for an
engine raises DatabaseConfigError, which surfaces as CONFIGURATION_MISSING.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable, Generator
from contextlib import AbstractContextManager, contextmanager
from enum import StrEnum
from typing import TYPE_CHECKING

from sqlalchemy import create_engine

from readiness.errors import ConfigurationError

if TYPE_CHECKING:
    from sqlalchemy import Connection, Engine

logger = logging.getLogger(__name__)

READINESS_DATABASE_URL_ENV = "READINESS_DATABASE_URL"
READINESS_DATABASE_ADMIN_URL_ENV = "READINESS_DATABASE_ADMIN_URL"

# Opens a connection inside a transaction; repositories run each operation in one.
ConnectionFactory = Callable[[], AbstractContextManager["Connection"]]


class DatabaseRole(StrEnum):
    APP = "app"
    ADMIN = "admin"


_URL_ENV: dict[DatabaseRole, str] = {
    DatabaseRole.APP: READINESS_DATABASE_URL_ENV,
    DatabaseRole.ADMIN: READINESS_DATABASE_ADMIN_URL_ENV,
}

# (pool_size, max_overflow); rescore workers share the app pool.
_POOL_LIMITS: dict[DatabaseRole, tuple[int, int]] = {
    DatabaseRole.APP: (5, 10),
    DatabaseRole.ADMIN: (1, 2),
}

_engines: dict[DatabaseRole, Engine] = {}
_engines_lock = threading.Lock()


class DatabaseConfigError(ConfigurationError):
    """Raised when a database URL is required but not set."""

    def __init__(self, env_var: str) -> None:
        super().__init__(f"Database URL not configured; set {env_var}", missing=[env_var])


def is_postgres_configured() -> bool:
    """True when READINESS_DATABASE_URL is set."""
    return bool(os.environ.get(READINESS_DATABASE_URL_ENV))


def get_database_url(role: DatabaseRole = DatabaseRole.APP) -> str:
    """Connection string for a role, with postgres:// rewritten for SQLAlchemy.

    Raises:
        DatabaseConfigError: If the role's variable is unset.
    """
    env_var = _URL_ENV[role]
    url = os.environ.get(env_var)
    if not url:
        raise DatabaseConfigError(env_var)
    if url.startswith("postgres://"):
        url = "postgresql://" + url.removeprefix("postgres://")
    return url


def get_engine(role: DatabaseRole = DatabaseRole.APP) -> Engine:
    """Process-wide engine for a role, created on first use."""
    with _engines_lock:
        engine = _engines.get(role)
        if engine is None:
            pool_size, max_overflow = _POOL_LIMITS[role]
            engine = create_engine(
                get_database_url(role),
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_pre_ping=True,
            )
            _engines[role] = engine
            logger.info("Created %s database engine", role.value)
        return engine


@contextmanager
def begin_app_conn() -> Generator[Connection, None, None]:
    """Runtime-role connection inside a transaction (commit on success, rollback on error).

    Raises:
        DatabaseConfigError: If READINESS_DATABASE_URL is unset.
        SQLAlchemyError: If the database operation fails.
    """
    with get_engine(DatabaseRole.APP).connect() as conn, conn.begin():
        yield conn


def reset_engines() -> None:
    """Dispose cached engines. For testing only."""
    with _engines_lock:
        for engine in _engines.values():
            engine.dispose()
        _engines.clear()
