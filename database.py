"""Engine, session factory and transaction helpers for the budget store."""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from config import get_settings

# Concurrent visibility toggles on SQLite wait this long for the write lock.
SQLITE_BUSY_TIMEOUT_MS = 5000


def build_engine(database_url: str) -> Engine:
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True)
    eng = create_engine(database_url, connect_args={"check_same_thread": False})
    event.listen(eng, "connect", _apply_sqlite_pragmas)
    return eng


def _apply_sqlite_pragmas(dbapi_conn, _record) -> None:
    # Permission and budget rows reference users and budgets; SQLite only
    # enforces that with foreign_keys switched on per connection.
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS};")
    cursor.close()


engine = build_engine(get_settings().database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


@contextmanager
def session_scope() -> Iterator[Session]:
    """Open a fresh session for work outside a request, such as startup seeding."""
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def atomic(session: Session) -> Iterator[Session]:
    """Run a unit of work on an existing session.

    Commits when the block exits normally; any exception rolls back every
    write made since the last commit and is re-raised.
    """
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
