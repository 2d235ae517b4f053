"""Database configuration: the connection pool owner and session dependencies."""

from contextlib import contextmanager
from typing import Iterator

from fastapi import Depends, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from lms_grading.app_logger import get_logger
from lms_grading.config import Settings
from lms_grading.errors import TransactionFailure

logger = get_logger("database")


class Database:
    """Owns the SQLAlchemy engine (and therefore the connection pool).

    One instance is created by the app factory and kept on ``app.state.db``;
    route handlers get it through :func:`get_database`.
    """

    def __init__(self, url: str, echo: bool = False, **engine_kwargs):
        if url.startswith("sqlite"):
            engine_kwargs.setdefault("connect_args", {"check_same_thread": False})
            # In-memory SQLite only survives on a single shared connection
            if url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs.setdefault("poolclass", StaticPool)
        self.url = url
        self.engine = create_engine(url, echo=echo, **engine_kwargs)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        kwargs = {}
        if not settings.DATABASE_URL.startswith("sqlite"):
            kwargs.update(
                pool_size=settings.DB_POOL_SIZE,
                pool_timeout=settings.DB_POOL_TIMEOUT,
                pool_pre_ping=True,
            )
        return cls(settings.DATABASE_URL, echo=settings.DB_ECHO, **kwargs)

    def create_db_and_tables(self) -> None:
        """Create database tables based on SQLModel metadata."""
        from lms_grading import models  # noqa: F401  (registers the tables)

        SQLModel.metadata.create_all(self.engine)

    def drop_db_and_tables(self) -> None:
        SQLModel.metadata.drop_all(self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Read-only unit of work; the connection goes back to the pool on exit."""
        with Session(self.engine, expire_on_commit=False) as session:
            yield session

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Commit on success, roll back everything on any exception.

        Driver and integrity errors surface as TransactionFailure; application
        errors propagate unchanged.
        """
        session = Session(self.engine, expire_on_commit=False)
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            logger.error("Transaction failed, rolling back: %s", e, exc_info=True)
            session.rollback()
            raise TransactionFailure("Database transaction failed") from e
        except Exception:
            logger.warning("Rolling back transaction", exc_info=True)
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()


def get_database(request: Request) -> Database:
    """FastAPI dependency returning the app's Database."""
    return request.app.state.db


def get_session(db: Database = Depends(get_database)) -> Iterator[Session]:
    """FastAPI dependency that yields a database session."""
    with db.session() as session:
        yield session
