"""
Database connection management.

Owns the pooled SQLAlchemy engine and the session lifecycle for the
conversation store.
"""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..config import DatabaseConfig
from .models import Base

logger = logging.getLogger(__name__)


def _redact(url: str) -> str:
    return url.split("@")[-1] if "@" in url else url


class Database:
    """
    Pooled engine plus session factory.

    Example:
        >>> db = Database("sqlite://")
        >>> with db.get_session() as session:
        ...     session.execute(text("SELECT 1"))
    """

    def __init__(
        self,
        url: str,
        pool_size: Optional[int] = None,
        max_overflow: Optional[int] = None,
        echo: bool = False,
        **engine_kwargs,
    ):
        self.url = url
        kwargs = {"pool_pre_ping": True, "echo": echo, **engine_kwargs}
        if not url.startswith("sqlite"):
            if pool_size is not None:
                kwargs["pool_size"] = pool_size
            if max_overflow is not None:
                kwargs["max_overflow"] = max_overflow
        self.engine = create_engine(url, **kwargs)

        if url.startswith("sqlite"):
            # SQLite leaves foreign keys off per connection
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        self._session_factory = sessionmaker(
            bind=self.engine,
            autocommit=False,
            autoflush=False,
        )
        logger.info(f"Database engine created: {_redact(url)}")

    @classmethod
    def from_config(cls, database_config: DatabaseConfig) -> "Database":
        return cls(
            database_config.url,
            pool_size=database_config.pool_size,
            max_overflow=database_config.max_overflow,
            echo=database_config.echo,
        )

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """
        Yield a session that commits on success and rolls back on error.
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Database error, rolling back: {e}")
            raise
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def init_schema(self) -> None:
        """Create missing tables."""
        Base.metadata.create_all(self.engine)
        logger.info("Database schema initialized")

    def health_check(self) -> bool:
        try:
            with self.get_session() as session:
                session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database connection check failed: {e}")
            return False

    def close(self) -> None:
        self.engine.dispose()
        logger.info("Database connections closed")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
