# src/repolink/store/database.py: SQLite database handle.
# The Database object owns the SQLAlchemy engine and session factory. It is
# created and closed by the composition root and passed to every component
# that needs storage; nothing in the package holds a module-level connection.

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..util.errors import StorageError
from ..util.log import get_logger
from .schema import Base

logger = get_logger(__name__)


def _sqlite_pragmas(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """
    Open/close lifecycle around a SQLite file (or ':memory:').
    """

    def __init__(self, path: Optional[Path] = None, url: Optional[str] = None, echo: bool = False):
        if url is None:
            if path is None:
                raise ValueError("Either a database path or a URL is required.")
            url = f"sqlite:///{path}"
        self.url = url
        self.path = path
        self._echo = echo
        self._engine: Optional[Engine] = None
        self._sessionmaker: Optional[sessionmaker] = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise StorageError("Database is not open.")
        return self._engine

    def open(self) -> "Database":
        if self._engine is not None:
            return self
        if self.path is not None:
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        try:
            engine = create_engine(self.url, echo=self._echo)
            if self.path is not None:
                event.listen(engine, "connect", _sqlite_pragmas)
            Base.metadata.create_all(engine)
        except SQLAlchemyError as e:
            logger.error("Failed to open database at %s: %s", self.url, e)
            raise StorageError(f"Failed to open database '{self.url}': {e}") from e
        self._engine = engine
        self._sessionmaker = sessionmaker(bind=engine, expire_on_commit=False)
        logger.debug("Opened database %s", self.url)
        return self

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._sessionmaker = None
            logger.debug("Closed database %s", self.url)

    def __enter__(self) -> "Database":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        A session whose work commits on success and rolls back on any error.

        SQLAlchemy errors are re-raised as StorageError.
        """
        if self._sessionmaker is None:
            raise StorageError("Database is not open.")
        session = self._sessionmaker()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Storage operation failed: %s", e)
            raise StorageError(f"Storage operation failed: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
