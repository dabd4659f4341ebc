from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker, DeclarativeBase, declared_attr

from .config import settings
from .errors import StorageError


logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    @declared_attr.directive
    def __tablename__(cls) -> str:  # type: ignore[override]
        return cls.__name__.lower()


def install_sqlite_hooks(engine: Engine) -> None:
    """Enable FK enforcement/WAL and let SQLAlchemy own BEGIN on pysqlite.

    pysqlite defers BEGIN on its own, which breaks SAVEPOINT handling; the
    materializers rely on savepoints to reconcile unique-key conflicts.
    """

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):  # type: ignore[override]
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def do_begin(conn):  # type: ignore[override]
        conn.exec_driver_sql("BEGIN")


engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {},
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

if settings.DATABASE_URL.startswith("sqlite"):
    install_sqlite_hooks(engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def unit_of_work(db: Session) -> Iterator[None]:
    """Commit on success; roll back on any failure.

    Driver/ORM failures surface as ``StorageError`` so callers see one error
    type for "the database did not take the write".
    """
    try:
        yield
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Storage failure, transaction rolled back")
        raise StorageError("Storage operation failed") from exc
    except Exception:
        db.rollback()
        raise
