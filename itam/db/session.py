"""SQLAlchemy session helpers and the transaction boundary used by services."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, Iterator, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from ..settings import settings

T = TypeVar("T")

# SQLite connections may be handed between threads; the timeout lets a writer
# wait for another transaction's lock instead of failing straight away.
CONNECT_ARGS = {"check_same_thread": False, "timeout": 30} if settings.is_sqlite else {}

engine = create_engine(settings.DB_URL, connect_args=CONNECT_ARGS, echo=settings.DB_ECHO)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

_DEPTH_KEY = "txn_depth"


def get_db():
    """Yield a session and guarantee cleanup."""

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Run the block as one unit of work.

    The outermost ``transaction`` commits on success and rolls back on any
    exception. Nested calls join the enclosing unit: they neither commit nor
    roll back, so a failure deep inside a composite operation undoes every
    write made since the outermost block began.
    """

    depth = db.info.get(_DEPTH_KEY, 0)
    db.info[_DEPTH_KEY] = depth + 1
    try:
        yield db
        if depth == 0:
            db.commit()
    except BaseException:
        if depth == 0:
            db.rollback()
        raise
    finally:
        db.info[_DEPTH_KEY] = depth


def in_transaction(db: Session) -> bool:
    return db.info.get(_DEPTH_KEY, 0) > 0


def run_in_transaction(db: Session, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Call ``fn(*args, **kwargs)`` inside :func:`transaction`."""

    with transaction(db):
        return fn(*args, **kwargs)
