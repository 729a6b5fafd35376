"""
Request/response operations of the user service.

Every operation runs the same gauntlet before touching data: the
administrative availability gate, a database liveness probe, and input
validation. Operations on a single account then run under that account's
lock from :class:`.IdentityLockTable`, and their writes are committed in a
single transaction.

Operations return a :class:`Response` on success, and raise
:class:`ServiceError` carrying a :class:`.Code` on every failure path.
"""

from typing import Any, Generator, Mapping, NamedTuple, Optional
from contextlib import contextmanager, nullcontext
from urllib.parse import urlencode
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from . import domain, passwords, validation
from .auth.email_tokens import EmailTokenManager
from .auth.exceptions import MissingToken, UnknownToken, InvalidToken, \
    ExpiredToken, NoSuchEmailToken, ExpiredEmailToken
from .auth.keys import SecretManager
from .auth.tokens import TokenManager
from .identifiers import generate_uuid
from .locks import IdentityLockTable, ReadWriteLock
from .mail import Mailer, MailDeliveryFailed, VERIFY_EMAIL_SUBJECT, \
    VERIFY_EMAIL_TEMPLATE
from .passwords import PasswordAuthenticationFailed
from .status import Code
from .store import Database, accounts
from .store.exceptions import NoSuchUser, EmailAlreadyExists, \
    StoreUnavailable
from .validation import ValidationError

logger = logging.getLogger(__name__)


class ServiceError(RuntimeError):
    """An operation failed; ``code`` says how."""

    def __init__(self, code: Code, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class Response(NamedTuple):
    """Result of a successful operation."""

    code: Code = Code.OK
    message: str = 'OK'
    user: Optional[domain.User] = None
    identification: Optional[domain.Identification] = None
    secret: Optional[domain.Secret] = None


class ServiceState:
    """Administrative availability flag, safe for concurrent use."""

    def __init__(self, available: bool = True) -> None:
        self._lock = ReadWriteLock()
        self._available = available

    def is_available(self) -> bool:
        with self._lock.read():
            return self._available

    def mark_available(self) -> None:
        with self._lock.write():
            self._available = True

    def mark_unavailable(self) -> None:
        with self._lock.write():
            self._available = False


@contextmanager
def _handle_errors(operation: str) -> Generator[None, None, None]:
    """Translate exceptions raised by an operation into ServiceErrors."""
    logger.info('%s request', operation)
    try:
        yield
    except ServiceError as e:
        logger.info('%s failed: %s', operation, e.message)
        raise
    except ValidationError as e:
        logger.info('%s rejected: %s', operation, e)
        raise ServiceError(Code.INVALID_ARGUMENT, str(e)) from e
    except (NoSuchUser, NoSuchEmailToken, MissingToken) as e:
        logger.info('%s failed: %s', operation, e)
        raise ServiceError(Code.NOT_FOUND, str(e)) from e
    except EmailAlreadyExists as e:
        logger.info('%s failed: %s', operation, e)
        raise ServiceError(Code.ALREADY_EXISTS, str(e)) from e
    except IntegrityError as e:
        logger.info('%s failed on a uniqueness constraint: %s', operation, e)
        raise ServiceError(Code.ALREADY_EXISTS, 'email already exists') from e
    except (UnknownToken, InvalidToken, ExpiredToken,
            PasswordAuthenticationFailed) as e:
        logger.info('%s failed: %s', operation, e)
        raise ServiceError(Code.UNAUTHENTICATED, str(e)) from e
    except ExpiredEmailToken as e:
        logger.info('%s failed: %s', operation, e)
        raise ServiceError(Code.DEADLINE_EXCEEDED, str(e)) from e
    except StoreUnavailable as e:
        logger.error('%s failed: %s', operation, e)
        raise ServiceError(Code.UNAVAILABLE, str(e)) from e
    except (SQLAlchemyError, MailDeliveryFailed) as e:
        logger.error('%s failed: %s', operation, e)
        raise ServiceError(Code.INTERNAL, str(e)) from e


class UserService:
    """
    Coordinates the account store and the token managers.

    Collaborators are injected, and share this instance's lifetime: they are
    created by :meth:`from_config` (or by the caller) and torn down by
    :meth:`close`.

    Parameters
    ----------
    database : :class:`.Database`
    mailer : :class:`.Mailer`
    locks : :class:`.IdentityLockTable`
    secret_manager : :class:`.SecretManager`
    token_manager : :class:`.TokenManager`
    email_token_manager : :class:`.EmailTokenManager`
    bcrypt_rounds : int
    verify_email_url : str
        Base of the link sent in verification e-mails.

    """

    def __init__(self, database: Database, mailer: Mailer,
                 locks: Optional[IdentityLockTable] = None,
                 secret_manager: Optional[SecretManager] = None,
                 token_manager: Optional[TokenManager] = None,
                 email_token_manager: Optional[EmailTokenManager] = None,
                 bcrypt_rounds: int = passwords.DEFAULT_ROUNDS,
                 verify_email_url: str = '') -> None:
        self.database = database
        self.mailer = mailer
        self.state = ServiceState()
        self.locks = locks or IdentityLockTable()
        self.secrets = secret_manager or SecretManager(database)
        self.tokens = token_manager or TokenManager(database, self.secrets)
        self.email_tokens = email_token_manager \
            or EmailTokenManager(database, self.locks)
        self._rounds = bcrypt_rounds
        self._verify_email_url = verify_email_url

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> 'UserService':
        """Build a service and its collaborators from configuration."""
        database = Database(config['DATABASE_URI'],
                            echo=bool(config.get('SQLALCHEMY_ECHO', False)))
        if config.get('CREATE_DB', True):
            database.create_all()
        mailer = Mailer(
            host=config.get('MAIL_HOST', ''),
            port=int(config.get('MAIL_PORT', 587)),
            username=config.get('MAIL_USERNAME'),
            password=config.get('MAIL_PASSWORD'),
            sender=config.get('MAIL_SENDER', 'no-reply@localhost'),
            use_tls=bool(config.get('MAIL_USE_TLS', True))
        )
        locks = IdentityLockTable()
        secret_manager = SecretManager(
            database,
            key_size=int(config.get('SECRET_KEY_SIZE', 32))
        )
        email_token_manager = EmailTokenManager(
            database, locks,
            duration=int(config.get('EMAIL_TOKEN_DURATION', 86400)),
            size=int(config.get('EMAIL_TOKEN_SIZE', 32))
        )
        return cls(
            database, mailer,
            locks=locks,
            secret_manager=secret_manager,
            token_manager=TokenManager(database, secret_manager),
            email_token_manager=email_token_manager,
            bcrypt_rounds=int(config.get('BCRYPT_ROUNDS',
                                         passwords.DEFAULT_ROUNDS)),
            verify_email_url=config.get('VERIFY_EMAIL_URL', '')
        )

    def close(self) -> None:
        """Stop accepting requests and release database connections."""
        self.state.mark_unavailable()
        self.database.dispose()
        logger.info('User service closed')

    def _check_available(self) -> None:
        if not self.state.is_available():
            raise ServiceError(Code.UNAVAILABLE, 'service unavailable')
        if not self.database.is_available():
            raise ServiceError(Code.UNAVAILABLE, 'database unavailable')

    def _send_verification(self, to: str, user: domain.User,
                           email_token: domain.EmailToken) -> None:
        query = urlencode({'token': email_token.token})
        self.mailer.send(to, VERIFY_EMAIL_SUBJECT, VERIFY_EMAIL_TEMPLATE, {
            'first_name': user.first_name,
            'last_name': user.last_name,
            'email': to,
            'verification_link': f'{self._verify_email_url}?{query}',
            'expires': email_token.expiration_timestamp.isoformat(),
        })

    def get_status(self) -> Response:
        """Report whether the service is accepting requests."""
        with _handle_errors('GetStatus'):
            self._check_available()
        return Response()

    def create_user(self, user: Optional[domain.User],
                    password: Optional[str]) -> Response:
        """
        Create a new, unverified account.

        The account row, its email token, and delivery of the verification
        e-mail succeed or fail together.

        Parameters
        ----------
        user : :class:`.domain.User`
            Names, e-mail and organization for the new account.
        password : str

        Returns
        -------
        :class:`Response`
            With the stored account, including its generated ``uuid``.

        """
        with _handle_errors('CreateUser'):
            self._check_available()
            if user is None:
                raise ServiceError(Code.INVALID_ARGUMENT, 'nil request User')
            validation.validate_user(user, password)
            digest = passwords.hash_password(password, self._rounds)

            uuid = generate_uuid()
            try:
                with self.locks.exclusive(uuid), self.locks.email_claims():
                    with self.database.transaction() as session:
                        created = accounts.insert_user(
                            session, user._replace(uuid=uuid), digest
                        )
                        email_token = self.email_tokens.issue(
                            uuid, session=session
                        )
                        self._send_verification(created.email, created,
                                                email_token)
            except Exception:
                self.locks.discard(uuid)
                raise
        logger.info('Created user %s', uuid)
        return Response(user=created)

    def get_user(self, uuid: Optional[str]) -> Response:
        """Get an account, without its password digest."""
        with _handle_errors('GetUser'):
            self._check_available()
            validation.validate_uuid(uuid)
            try:
                with self.locks.shared(uuid):
                    with self.database.transaction() as session:
                        user = accounts.get_user(session, uuid)
            except NoSuchUser:
                self.locks.discard(uuid)
                raise
        return Response(user=user)

    def update_user(self, user: Optional[domain.User],
                    password: Optional[str] = None) -> Response:
        """
        Apply the non-empty fields of ``user`` to its account.

        A new e-mail address is held as the prospective e-mail, and a
        verification e-mail is sent to it.

        Parameters
        ----------
        user : :class:`.domain.User`
            Must carry the ``uuid`` of an existing account.
        password : str or None
            A new password, if it is changing.

        Returns
        -------
        :class:`Response`
            With the updated account.

        """
        with _handle_errors('UpdateUser'):
            self._check_available()
            if user is None:
                raise ServiceError(Code.INVALID_ARGUMENT, 'nil request User')
            validation.validate_user_update(user, password)
            digest = None
            if password:
                digest = passwords.hash_password(password, self._rounds)

            uuid = user.uuid
            claims = self.locks.email_claims() if user.email \
                else nullcontext()
            try:
                with self.locks.exclusive(uuid), claims:
                    with self.database.transaction() as session:
                        updated, email_changed = accounts.update_user(
                            session, user, digest
                        )
                        if email_changed:
                            email_token = self.email_tokens.issue(
                                uuid, session=session
                            )
                            self._send_verification(
                                updated.prospective_email, updated,
                                email_token
                            )
            except NoSuchUser:
                self.locks.discard(uuid)
                raise
        return Response(user=updated)

    def delete_user(self, uuid: Optional[str]) -> Response:
        """Delete an account and any tokens it holds."""
        with _handle_errors('DeleteUser'):
            self._check_available()
            validation.validate_uuid(uuid)
            try:
                with self.locks.exclusive(uuid):
                    with self.database.transaction() as session:
                        accounts.delete_user(session, uuid)
            finally:
                self.locks.discard(uuid)
        logger.info('Deleted user %s', uuid)
        return Response()

    def authenticate_user(self, email: Optional[str],
                          password: Optional[str]) -> Response:
        """Check an e-mail address and password against the store."""
        with _handle_errors('AuthenticateUser'):
            self._check_available()
            validation.validate_email(email)
            validation.validate_password(password)
            with self.database.transaction() as session:
                user, digest = accounts.get_user_by_email(session, email)
            passwords.check_password(password, digest)
        return Response(user=user)

    def get_auth_token(self, uuid: Optional[str], email: Optional[str],
                       password: Optional[str]) -> Response:
        """
        Get the auth token for an account, issuing one if necessary.

        The caller must present the account's e-mail address and password.
        Repeated calls return the same token while the secret it was
        signed with remains the active one.
        """
        with _handle_errors('GetAuthToken'):
            self._check_available()
            validation.validate_uuid(uuid)
            validation.validate_email(email)
            validation.validate_password(password)
            try:
                with self.locks.exclusive(uuid):
                    with self.database.transaction() as session:
                        user, digest = accounts.get_credentials(session, uuid)
                    if user.email != email:
                        raise ServiceError(Code.UNAUTHENTICATED,
                                           'invalid User email')
                    passwords.check_password(password, digest)
                    identification = self.tokens.issue(uuid)
            except NoSuchUser:
                self.locks.discard(uuid)
                raise
        return Response(identification=identification)

    def verify_auth_token(self, token: Optional[str]) -> Response:
        """Verify an auth token; respond with its account and secret."""
        with _handle_errors('VerifyAuthToken'):
            self._check_available()
            identification = self.tokens.verify(token)
        return Response(identification=identification)

    def verify_email_token(self, token: Optional[str]) -> Response:
        """Consume an email token, verifying its account's address."""
        with _handle_errors('VerifyEmailToken'):
            self._check_available()
            user = self.email_tokens.verify(token)
        return Response(user=user)

    def make_new_secret(self) -> Response:
        """Rotate the signing secret."""
        with _handle_errors('MakeNewSecret'):
            self._check_available()
            self.secrets.rotate()
        return Response()

    def get_secret(self) -> Response:
        """Get the active signing secret, generating one if necessary."""
        with _handle_errors('GetSecret'):
            self._check_available()
            secret = self.secrets.get_active()
        return Response(secret=secret)
