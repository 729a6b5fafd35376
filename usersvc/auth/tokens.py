"""
Issue and verify auth tokens.

An auth token is an HS256 JWT signed with the active secret. The stored
record ties the token to its account and to the secret that signed it; an
account has at most one token at a time.
"""

from typing import Optional, Tuple
import logging
import secrets

import jwt
from sqlalchemy.orm.session import Session

from .. import domain
from ..store import Database, now, epoch
from ..store.models import DBAuthToken
from . import keys
from .exceptions import MissingToken, UnknownToken, InvalidToken, \
    ExpiredToken

logger = logging.getLogger(__name__)


def encode(uuid: str, secret: domain.Secret) -> str:
    """Encode a signed JWT for account ``uuid``."""
    claims = {
        'sub': uuid,
        'jti': secrets.token_urlsafe(16),
        'iat': now(),
        'exp': epoch(secret.expiration_timestamp),
    }
    return jwt.encode(claims, secret.key, algorithm='HS256')


def decode(token: str, secret: domain.Secret) -> dict:
    """Decode and check the signature of an auth token."""
    try:
        data: dict = jwt.decode(token, secret.key, algorithms=['HS256'])
    except jwt.exceptions.ExpiredSignatureError as e:
        raise ExpiredToken('Token has expired') from e
    except jwt.exceptions.InvalidTokenError as e:
        raise InvalidToken('Not a valid token') from e
    return data


class TokenManager:
    """
    Issues auth tokens under the active secret, and verifies them.

    Parameters
    ----------
    database : :class:`.Database`
    secret_manager : :class:`.keys.SecretManager`

    """

    def __init__(self, database: Database,
                 secret_manager: keys.SecretManager) -> None:
        self._db = database
        self._secrets = secret_manager

    def issue(self, uuid: str,
              session: Optional[Session] = None) -> domain.Identification:
        """
        Get the auth token for an account, creating it if necessary.

        If the account already holds a token signed by the active secret,
        that token is returned unchanged. A token signed by any other
        secret is replaced.

        Parameters
        ----------
        uuid : str
            Identifier of an existing account.
        session : :class:`Session` or None
            If provided, the token is written in the caller's transaction.

        Returns
        -------
        :class:`.domain.Identification`

        """
        active = self._secrets.get_active()
        with self._db.transaction(session) as session:
            db_token = session.query(DBAuthToken) \
                .filter(DBAuthToken.uuid == uuid) \
                .first()
            if db_token is not None:
                if db_token.secret_key == active.key:
                    return domain.Identification(token=db_token.token,
                                                 secret=active, uuid=uuid)
                logger.debug('replacing token for %s; secret superseded',
                             uuid)
                session.delete(db_token)
                session.flush()

            token = encode(uuid, active)
            session.add(DBAuthToken(token=token, uuid=uuid,
                                    secret_key=active.key,
                                    created_timestamp=now()))
            session.flush()
        logger.debug('issued token for %s', uuid)
        return domain.Identification(token=token, secret=active, uuid=uuid)

    def verify(self, token: Optional[str]) -> domain.Identification:
        """
        Verify an auth token.

        Parameters
        ----------
        token : str

        Returns
        -------
        :class:`.domain.Identification`
            The token, the account it belongs to, and the secret that
            signed it.

        Raises
        ------
        :class:`MissingToken`
            If no token is provided.
        :class:`UnknownToken`
            If there is no record of the token.
        :class:`ExpiredToken`
            If the secret that signed the token has expired.
        :class:`InvalidToken`
            If the signature or subject do not match the record.

        """
        if not token:
            raise MissingToken('no auth token provided')

        record = self._load(token)
        if record is None:
            raise UnknownToken(
                'no matching auth token were found with given token'
            )
        uuid, secret = record
        if secret.expired:
            raise ExpiredToken('Token has expired')

        claims = decode(token, secret)
        if claims.get('sub') != uuid:
            raise InvalidToken('Token subject does not match its record')
        return domain.Identification(token=token, secret=secret, uuid=uuid)

    def _load(self, token: str) -> Optional[Tuple[str, domain.Secret]]:
        with self._db.transaction() as session:
            db_token = session.get(DBAuthToken, token)
            if db_token is None:
                return None
            return db_token.uuid, keys.to_domain(db_token.secret)
