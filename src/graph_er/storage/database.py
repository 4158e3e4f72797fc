"""Engine and session management."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from graph_er.errors import ConfigError, PersistenceError
from graph_er.storage.models import Base


def create_database_engine(database_url: str, echo: bool = False) -> Engine:
    try:
        url = make_url(database_url)
    except ArgumentError as exc:
        raise ConfigError(f"Invalid database URL {database_url!r}: {exc}") from exc

    kwargs: dict[str, Any] = {}
    if url.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        if url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        else:
            # One shared connection, otherwise each session sees its own empty database.
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True
    return create_engine(url, echo=echo, **kwargs)


class Database:
    """Owns the engine and hands out short transactional sessions."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._sessions = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> "Database":
        return cls(create_database_engine(database_url, echo=echo))

    def ensure_schema(self) -> None:
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Cannot create schema: {exc}") from exc

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Commit on success, roll back on error.

        Uniqueness conflicts surface as ``IntegrityError`` so callers can treat
        them as "already exists"; every other database error, including other
        constraint violations, becomes ``PersistenceError``.
        """
        session = self._sessions()
        try:
            yield session
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            if is_unique_violation(exc):
                raise
            raise PersistenceError(f"Constraint violation: {exc.orig}") from exc
        except SQLAlchemyError as exc:
            session.rollback()
            raise PersistenceError(str(exc)) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()


_UNIQUE_SQLSTATE = "23505"
_UNIQUE_MESSAGES = ("UNIQUE constraint failed", "Duplicate entry", "duplicate key")


def is_unique_violation(exc: IntegrityError) -> bool:
    """True when the driver reports a primary key or unique index conflict."""
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate is not None:
        return sqlstate == _UNIQUE_SQLSTATE
    message = str(orig)
    return any(marker in message for marker in _UNIQUE_MESSAGES)


def to_db_time(value: datetime) -> datetime:
    """Store naive UTC; SQLite drops offsets anyway."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def from_db_time(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
