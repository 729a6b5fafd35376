"""
Signing-secret rotation.

Secrets are time-boxed to calendar weeks: each one expires at the first
Monday 03:00 UTC strictly after it was generated. Every secret is kept in
the ``secrets`` table; the single-row ``active_secret`` table designates the
one used to issue new tokens.
"""

from typing import Optional
from base64 import urlsafe_b64encode
from datetime import datetime
import logging
import secrets
import threading

from dateutil.relativedelta import relativedelta, MO
from pytz import UTC
from sqlalchemy.orm.session import Session

from .. import domain
from ..store import Database, epoch, from_epoch
from ..store.models import DBSecret, DBActiveSecret

logger = logging.getLogger(__name__)

DEFAULT_KEY_SIZE = 32


def next_expiration(now: datetime) -> datetime:
    """Get the first Monday 03:00 UTC strictly after ``now``."""
    now = now.astimezone(UTC)
    expires = now + relativedelta(weekday=MO(+1), hour=3, minute=0,
                                  second=0, microsecond=0)
    if expires <= now:
        expires += relativedelta(weeks=1)
    return expires


def generate_key(size: int = DEFAULT_KEY_SIZE) -> str:
    """Generate URL-safe base64-encoded random key material."""
    return urlsafe_b64encode(secrets.token_bytes(size)).decode('ascii')


def to_domain(db_secret: DBSecret) -> domain.Secret:
    """Cast a secret row to a :class:`.domain.Secret`."""
    return domain.Secret(
        key=db_secret.secret_key,
        created_timestamp=from_epoch(db_secret.created_timestamp),
        expiration_timestamp=from_epoch(db_secret.expiration_timestamp)
    )


def load(session: Session, key: str) -> Optional[domain.Secret]:
    """Load a secret by its key material, active or not."""
    db_secret = session.get(DBSecret, key)
    if db_secret is None:
        return None
    return to_domain(db_secret)


class SecretManager:
    """
    Owns the active signing secret.

    The active secret is cached in process and re-read from the store when
    the cache is empty or has expired. Discovering that there is no usable
    secret and generating one happen under a single lock, so racing callers
    cause at most one rotation.

    Parameters
    ----------
    database : :class:`.Database`
    key_size : int
        Number of random bytes of key material.

    """

    def __init__(self, database: Database,
                 key_size: int = DEFAULT_KEY_SIZE) -> None:
        self._db = database
        self._key_size = key_size
        self._lock = threading.Lock()
        self._active: Optional[domain.Secret] = None

    def get_active(self) -> domain.Secret:
        """
        Get the active secret, generating one if none is usable.

        Returns
        -------
        :class:`.domain.Secret`

        """
        active = self._active
        if active is not None and not active.expired:
            return active

        with self._lock:
            active = self._active
            if active is not None and not active.expired:
                return active
            active = self._load_active()
            if active is None or active.expired:
                logger.info('No active secret; rotating')
                active = self._rotate()
            self._active = active
            return active

    def rotate(self) -> domain.Secret:
        """
        Generate a new secret and make it the active one.

        Tokens issued under the superseded secret remain verifiable until
        that secret expires.
        """
        with self._lock:
            self._active = self._rotate()
            return self._active

    def clear(self) -> None:
        """Drop the cached secret; the next read goes to the store."""
        with self._lock:
            self._active = None

    def _load_active(self) -> Optional[domain.Secret]:
        with self._db.transaction() as session:
            db_active = session.get(DBActiveSecret,
                                    DBActiveSecret.ACTIVE_SLOT)
            if db_active is None:
                return None
            return to_domain(db_active.secret)

    def _rotate(self) -> domain.Secret:
        now = datetime.now(tz=UTC)
        created = from_epoch(epoch(now))
        secret = domain.Secret(
            key=generate_key(self._key_size),
            created_timestamp=created,
            expiration_timestamp=next_expiration(now)
        )
        with self._db.transaction() as session:
            session.add(DBSecret(
                secret_key=secret.key,
                created_timestamp=epoch(secret.created_timestamp),
                expiration_timestamp=epoch(secret.expiration_timestamp)
            ))
            db_active = session.get(DBActiveSecret,
                                    DBActiveSecret.ACTIVE_SLOT)
            if db_active is None:
                session.add(DBActiveSecret(slot=DBActiveSecret.ACTIVE_SLOT,
                                           secret_key=secret.key))
            else:
                db_active.secret_key = secret.key
        logger.info('Rotated secret; expires %s',
                    secret.expiration_timestamp.isoformat())
        return secret
