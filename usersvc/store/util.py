"""Database handle, transactions and timestamp helpers."""

from typing import Generator, Optional
from contextlib import contextmanager
from datetime import datetime
import logging

from pytz import UTC
from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.session import Session
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)


def now() -> int:
    """Get the current epoch/unix time."""
    return epoch(datetime.now(tz=UTC))


def epoch(t: datetime) -> int:
    """Convert a :class:`.datetime` to UNIX time."""
    delta = t - datetime.fromtimestamp(0, tz=UTC)
    return int(round((delta).total_seconds()))


def from_epoch(t: int) -> datetime:
    """Get a :class:`datetime` from an UNIX timestamp."""
    return datetime.fromtimestamp(t, tz=UTC)


class Database:
    """
    Owns the engine and session factory for the relational store.

    Parameters
    ----------
    uri : str
        SQLAlchemy database URL.
    echo : bool
        If True, SQL statements are logged.

    """

    def __init__(self, uri: str, echo: bool = False) -> None:
        params = {}
        if uri.startswith('sqlite'):
            # Sessions are used from request threads.
            params['connect_args'] = {'check_same_thread': False}
            if uri in ('sqlite://', 'sqlite:///:memory:'):
                params['poolclass'] = StaticPool
        self.uri = uri
        self.engine = create_engine(uri, echo=echo, **params)
        self._sessions = sessionmaker(bind=self.engine,
                                      expire_on_commit=False)

    def session(self) -> Session:
        """Create a new, unmanaged session."""
        return self._sessions()

    @contextmanager
    def transaction(self, session: Optional[Session] = None) \
            -> Generator[Session, None, None]:
        """
        Context manager for database transaction.

        If ``session`` is passed, the block joins that caller's transaction
        and commit/rollback are left to the caller. Otherwise a new session
        is opened, committed when the block exits cleanly, and rolled back
        if anything in the block raises.
        """
        if session is not None:
            yield session
            return

        session = self._sessions()
        try:
            yield session
            session.commit()
        except Exception as e:
            logger.error('Commit failed, rolling back: %s', str(e))
            session.rollback()
            raise
        finally:
            session.close()

    def is_available(self) -> bool:
        """Determine whether the store accepts connections and queries."""
        try:
            with self.engine.connect() as connection:
                connection.execute(text('SELECT 1'))
        except SQLAlchemyError as e:
            logger.error('Database is not available: %s', str(e))
            return False
        return True

    def create_all(self) -> None:
        """Create all tables in the database."""
        Base.metadata.create_all(self.engine)

    def drop_all(self) -> None:
        """Drop all tables in the database."""
        Base.metadata.drop_all(self.engine)

    def dispose(self) -> None:
        """Close all pooled connections."""
        self.engine.dispose()
