"""
Per-identity locking for account mutations.

Every request that touches an account takes that account's lock: writers
(create, update, delete, token issuance) in exclusive mode, readers in
shared mode. Requests for different accounts never block one another.

Locks are created lazily on first use and checked out/in with a reference
count, so an entry can be evicted once the account is known to be gone
without pulling the lock out from under a request that already holds it or
is waiting on it.
"""

from typing import Dict, Generator
from contextlib import contextmanager
import logging
import threading

logger = logging.getLogger(__name__)


class ReadWriteLock:
    """
    A reader/writer lock that prefers waiting writers.

    Any number of readers may hold the lock at once; a writer holds it
    alone. New readers queue behind a waiting writer.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read(self) -> Generator[None, None, None]:
        """Hold the lock in shared mode for the duration of the block."""
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self) -> Generator[None, None, None]:
        """Hold the lock in exclusive mode for the duration of the block."""
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class _Entry:
    __slots__ = ('lock', 'refs', 'stale')

    def __init__(self) -> None:
        self.lock = ReadWriteLock()
        self.refs = 0
        self.stale = False


class IdentityLockTable:
    """Maps account identifiers to :class:`ReadWriteLock` instances."""

    def __init__(self) -> None:
        self._mutex = threading.Lock()
        self._entries: Dict[str, _Entry] = {}
        self._claims = threading.Lock()

    def __len__(self) -> int:
        with self._mutex:
            return len(self._entries)

    def __contains__(self, uuid: object) -> bool:
        with self._mutex:
            return uuid in self._entries

    def _checkout(self, uuid: str) -> _Entry:
        with self._mutex:
            entry = self._entries.get(uuid)
            if entry is None:
                entry = _Entry()
                self._entries[uuid] = entry
            entry.refs += 1
            return entry

    def _checkin(self, uuid: str, entry: _Entry) -> None:
        with self._mutex:
            entry.refs -= 1
            if entry.refs == 0 and entry.stale:
                self._evict(uuid, entry)

    def _evict(self, uuid: str, entry: _Entry) -> None:
        # Caller holds the mutex. A fresh entry may already have replaced
        # the stale one; leave it alone.
        if self._entries.get(uuid) is entry:
            del self._entries[uuid]
            logger.debug('evicted lock for %s', uuid)

    @contextmanager
    def exclusive(self, uuid: str) -> Generator[None, None, None]:
        """
        Hold the lock for ``uuid`` in exclusive mode.

        The lock is released on every exit path, including exceptions.
        """
        entry = self._checkout(uuid)
        try:
            with entry.lock.write():
                yield
        finally:
            self._checkin(uuid, entry)

    @contextmanager
    def shared(self, uuid: str) -> Generator[None, None, None]:
        """Hold the lock for ``uuid`` in shared mode."""
        entry = self._checkout(uuid)
        try:
            with entry.lock.read():
                yield
        finally:
            self._checkin(uuid, entry)

    @contextmanager
    def email_claims(self) -> Generator[None, None, None]:
        """
        Serialize requests that claim an e-mail address.

        One account may hold an address as its committed e-mail while another
        claims it as a prospective e-mail, so per-account locks do not keep
        the two apart. Hold this across the uniqueness check and the commit.
        It is always taken after any per-account lock.
        """
        with self._claims:
            yield

    def discard(self, uuid: str) -> None:
        """
        Evict the lock for an account that no longer exists.

        If the lock is still checked out, it is only marked stale, and is
        removed when the last holder or waiter releases it. Requests that
        arrive after the eviction get a new lock.
        """
        with self._mutex:
            entry = self._entries.get(uuid)
            if entry is None:
                return
            entry.stale = True
            if entry.refs == 0:
                self._evict(uuid, entry)
