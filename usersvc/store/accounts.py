"""Provide methods for working with user accounts."""

from typing import Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.session import Session
import logging

from .. import domain
from . import util
from .exceptions import NoSuchUser, EmailAlreadyExists, StoreUnavailable
from .models import DBAccount

logger = logging.getLogger(__name__)


def to_domain(db_account: DBAccount) -> domain.User:
    """Cast an account row to a :class:`.domain.User`, without the digest."""
    modified = db_account.modified_date
    return domain.User(
        uuid=db_account.uuid,
        first_name=db_account.first_name,
        last_name=db_account.last_name,
        email=db_account.email,
        organization=db_account.organization,
        created_date=util.from_epoch(db_account.created_date),
        modified_date=util.from_epoch(modified) if modified else None,
        is_verified=bool(db_account.is_verified),
        prospective_email=db_account.prospective_email
    )


def get_account(session: Session, uuid: str) -> DBAccount:
    """
    Load an account row.

    Raises
    ------
    :class:`NoSuchUser`
    :class:`StoreUnavailable`

    """
    try:
        db_account = session.get(DBAccount, uuid)
    except OperationalError as e:
        raise StoreUnavailable('Database is temporarily unavailable') from e
    if db_account is None:
        raise NoSuchUser('user is not found in database')
    return db_account


def user_exists(session: Session, uuid: str) -> bool:
    """Determine whether an account with identifier ``uuid`` exists."""
    try:
        data = session.query(DBAccount.uuid) \
            .filter(DBAccount.uuid == uuid) \
            .first()
    except OperationalError as e:
        raise StoreUnavailable('Database is temporarily unavailable') from e
    return data is not None


def email_exists(session: Session, email: str,
                 exclude_uuid: Optional[str] = None) -> bool:
    """
    Determine whether an e-mail address is taken.

    An address is taken if any account holds it as its committed e-mail or
    as its prospective e-mail.

    Parameters
    ----------
    session : :class:`Session`
    email : str
    exclude_uuid : str or None
        If provided, this account's own addresses are not considered.

    Returns
    -------
    bool

    """
    query = session.query(DBAccount.uuid).filter(
        or_(DBAccount.email == email, DBAccount.prospective_email == email)
    )
    if exclude_uuid is not None:
        query = query.filter(DBAccount.uuid != exclude_uuid)
    try:
        data = query.first()
    except OperationalError as e:
        raise StoreUnavailable('Database is temporarily unavailable') from e
    return data is not None


def get_user(session: Session, uuid: str) -> domain.User:
    """Load user data from the database."""
    return to_domain(get_account(session, uuid))


def get_credentials(session: Session, uuid: str) -> Tuple[domain.User, str]:
    """Load user data and the password digest for an account."""
    db_account = get_account(session, uuid)
    return to_domain(db_account), db_account.password


def get_user_by_email(session: Session,
                      email: str) -> Tuple[domain.User, str]:
    """
    Load user data and the password digest for an e-mail address.

    Only the committed e-mail address is matched.

    Returns
    -------
    :class:`.domain.User`
    str
        The stored bcrypt password digest.

    """
    try:
        db_account = session.query(DBAccount) \
            .filter(DBAccount.email == email) \
            .first()
    except OperationalError as e:
        raise StoreUnavailable('Database is temporarily unavailable') from e
    if db_account is None:
        raise NoSuchUser('user is not found in database')
    return to_domain(db_account), db_account.password


def insert_user(session: Session, user: domain.User,
                password_digest: str) -> domain.User:
    """
    Add a new account row.

    Parameters
    ----------
    session : :class:`Session`
    user : :class:`.domain.User`
        Must carry a freshly-generated ``uuid``.
    password_digest : str

    Returns
    -------
    :class:`.domain.User`
        The stored account.

    Raises
    ------
    :class:`EmailAlreadyExists`

    """
    if email_exists(session, user.email):
        raise EmailAlreadyExists('email already exists')
    db_account = DBAccount(
        uuid=user.uuid,
        first_name=user.first_name.strip(),
        last_name=user.last_name.strip(),
        email=user.email,
        password=password_digest,
        organization=user.organization,
        created_date=util.now(),
        is_verified=False,
    )
    session.add(db_account)
    try:
        session.flush()
    except IntegrityError as e:
        raise EmailAlreadyExists('email already exists') from e
    logger.debug('inserted account %s', user.uuid)
    return to_domain(db_account)


def update_user(session: Session, user: domain.User,
                password_digest: Optional[str] = None) \
        -> Tuple[domain.User, bool]:
    """
    Apply the non-empty fields of ``user`` to an existing account.

    A changed e-mail address is not committed; it is stored as the
    prospective e-mail until confirmed with an email token. Asking for the
    committed address withdraws any pending change, and its email token.

    Returns
    -------
    :class:`.domain.User`
        The updated account.
    bool
        True if a new prospective e-mail address was recorded.

    Raises
    ------
    :class:`NoSuchUser`
    :class:`EmailAlreadyExists`

    """
    db_account = get_account(session, user.uuid)
    if user.first_name:
        db_account.first_name = user.first_name.strip()
    if user.last_name:
        db_account.last_name = user.last_name.strip()
    if user.organization:
        db_account.organization = user.organization
    if password_digest:
        db_account.password = password_digest

    email_changed = False
    if user.email and user.email == db_account.email \
            and db_account.prospective_email:
        # Changing back to the committed address withdraws a pending change.
        db_account.prospective_email = None
        db_account.email_token = None
    elif user.email and user.email != db_account.email \
            and user.email != db_account.prospective_email:
        if email_exists(session, user.email, exclude_uuid=user.uuid):
            raise EmailAlreadyExists('email already exists')
        db_account.prospective_email = user.email
        email_changed = True

    db_account.modified_date = util.now()
    try:
        session.flush()
    except IntegrityError as e:
        raise EmailAlreadyExists('email already exists') from e
    return to_domain(db_account), email_changed


def delete_user(session: Session, uuid: str) -> None:
    """
    Delete an account and its tokens.

    Raises
    ------
    :class:`NoSuchUser`

    """
    db_account = get_account(session, uuid)
    session.delete(db_account)
    session.flush()
    logger.debug('deleted account %s', uuid)
