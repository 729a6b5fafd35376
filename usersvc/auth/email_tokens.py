"""
Email-verification tokens.

A single token table serves both new-account verification and e-mail
change confirmation. Which one a token confirms is decided by the state of
its account when the token is presented:

- an unverified account is verified on success, and deleted outright if
  the token has expired;
- a verified account with a prospective e-mail has that address promoted
  on success, or discarded if the token has expired.

Expiry is enforced lazily, when a token is presented.
"""

from typing import Optional
from base64 import urlsafe_b64encode
import logging
import secrets

from sqlalchemy.orm.session import Session

from .. import domain
from ..locks import IdentityLockTable
from ..store import Database, now, from_epoch
from ..store.accounts import to_domain
from ..store.models import DBEmailToken
from ..validation import ValidationError
from .exceptions import NoSuchEmailToken, ExpiredEmailToken

logger = logging.getLogger(__name__)

DEFAULT_DURATION = 86400
DEFAULT_SIZE = 32

VERIFIED = 'verified'
EXPIRED = 'expired'
MISSING = 'missing'


def generate_token(size: int = DEFAULT_SIZE) -> str:
    """Generate a URL-safe base64-encoded random token."""
    return urlsafe_b64encode(secrets.token_bytes(size)).decode('ascii')


class EmailTokenManager:
    """
    Issues and verifies email tokens.

    Parameters
    ----------
    database : :class:`.Database`
    locks : :class:`.IdentityLockTable`
        Verification takes the owning account's lock in exclusive mode.
    duration : int
        Token lifetime, in seconds.
    size : int
        Number of random bytes per token.

    """

    def __init__(self, database: Database, locks: IdentityLockTable,
                 duration: int = DEFAULT_DURATION,
                 size: int = DEFAULT_SIZE) -> None:
        self._db = database
        self._locks = locks
        self._duration = duration
        self._size = size

    def issue(self, uuid: str,
              session: Optional[Session] = None) -> domain.EmailToken:
        """
        Create an email token for an account.

        Any previous token for the account is replaced. The caller must
        hold the account's lock.
        """
        created = now()
        db_token = DBEmailToken(
            token=generate_token(self._size),
            uuid=uuid,
            created_timestamp=created,
            expiration_timestamp=created + self._duration
        )
        with self._db.transaction(session) as session:
            existing = session.query(DBEmailToken) \
                .filter(DBEmailToken.uuid == uuid) \
                .first()
            if existing is not None:
                session.delete(existing)
                session.flush()
            session.add(db_token)
            session.flush()
        return domain.EmailToken(
            token=db_token.token,
            uuid=uuid,
            created_timestamp=from_epoch(db_token.created_timestamp),
            expiration_timestamp=from_epoch(db_token.expiration_timestamp)
        )

    def verify(self, token: Optional[str]) -> domain.User:
        """
        Consume an email token.

        Parameters
        ----------
        token : str

        Returns
        -------
        :class:`.domain.User`
            The account, now verified.

        Raises
        ------
        :class:`.ValidationError`
            If no token is provided.
        :class:`NoSuchEmailToken`
            If there is no record of the token.
        :class:`ExpiredEmailToken`
            If the token has expired. The token is deleted, along with
            the account if it was never verified, or else the account's
            prospective e-mail.

        """
        if not token:
            raise ValidationError('invalid email token')

        uuid = self._owner(token)
        if uuid is None:
            raise NoSuchEmailToken('no matching email token found')

        user: Optional[domain.User] = None
        account_deleted = False
        with self._locks.exclusive(uuid):
            with self._db.transaction() as session:
                db_token = session.get(DBEmailToken, token)
                if db_token is None:
                    outcome = MISSING
                elif now() > db_token.expiration_timestamp:
                    outcome = EXPIRED
                    account_deleted = self._expire(session, db_token)
                else:
                    outcome = VERIFIED
                    user = self._confirm(session, db_token)

        if account_deleted:
            self._locks.discard(uuid)
        if outcome == MISSING:
            raise NoSuchEmailToken('no matching email token found')
        if outcome == EXPIRED:
            raise ExpiredEmailToken('email token has expired')
        logger.info('verified email for %s', uuid)
        return user

    def _owner(self, token: str) -> Optional[str]:
        with self._db.transaction() as session:
            db_token = session.get(DBEmailToken, token)
            return db_token.uuid if db_token is not None else None

    def _expire(self, session: Session, db_token: DBEmailToken) -> bool:
        db_account = db_token.account
        if not db_account.is_verified:
            logger.info('email token expired; deleting unverified account %s',
                        db_account.uuid)
            session.delete(db_account)
            session.flush()
            return True
        logger.info('email token expired; discarding prospective email '
                    'for %s', db_account.uuid)
        db_account.prospective_email = None
        session.delete(db_token)
        session.flush()
        return False

    def _confirm(self, session: Session,
                 db_token: DBEmailToken) -> domain.User:
        db_account = db_token.account
        db_account.is_verified = True
        if db_account.prospective_email:
            db_account.email = db_account.prospective_email
            db_account.prospective_email = None
            db_account.modified_date = now()
        session.delete(db_token)
        session.flush()
        return to_domain(db_account)
