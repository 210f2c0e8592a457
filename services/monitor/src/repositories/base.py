"""Shared helpers for repository writes."""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.workflow.errors import PersistenceError


def dialect_insert(session: AsyncSession, model):
    """Return an ``insert()`` that supports ``on_conflict_do_*`` for the bound dialect.

    PostgreSQL in production, SQLite in tests; both expose the same
    ``on_conflict_do_nothing`` / ``on_conflict_do_update`` API.
    """
    dialect = session.bind.dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"Upserts are not supported on dialect {dialect!r}")


@contextmanager
def persistence_errors(operation: str) -> Iterator[None]:
    """Re-raise database failures as PersistenceError."""
    try:
        yield
    except SQLAlchemyError as e:
        raise PersistenceError(f"{operation}: {e}") from e
