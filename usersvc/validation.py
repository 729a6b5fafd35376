"""Syntax checks for caller-supplied account fields."""

import re
from typing import Optional

from . import domain
from .identifiers import is_uuid
from .passwords import MAX_PASSWORD_BYTES

MAX_NAME_LENGTH = 32
MAX_EMAIL_LENGTH = 320

_MULTI_SPACE = re.compile(r'\s{2,}')

# Letters, where each separator (apostrophe, period, whitespace or hyphen)
# must be followed by a letter or whitespace.
_NAME = re.compile(r"^[^\W\d_]+(?:[^\W\d_]|['.\s-](?:[^\W\d_]|\s))*$")

_EMAIL = re.compile(r'.+@.+')


class ValidationError(ValueError):
    """A caller-supplied field is malformed or missing."""


class InvalidUUID(ValidationError):
    """Account identifier is not a lower-case ULID."""


class InvalidFirstName(ValidationError):
    """First name is blank, too long, or contains invalid characters."""


class InvalidLastName(ValidationError):
    """Last name is blank, too long, or contains invalid characters."""


class InvalidEmail(ValidationError):
    """E-mail address is malformed or too long."""


class InvalidPassword(ValidationError):
    """Password is blank."""


class InvalidOrganization(ValidationError):
    """Organization is blank."""


def _is_valid_name(name: Optional[str]) -> bool:
    name = (name or '').strip()
    if not name:
        return False
    name = _MULTI_SPACE.sub(' ', name)
    return len(name) <= MAX_NAME_LENGTH and bool(_NAME.match(name))


def validate_first_name(name: Optional[str]) -> None:
    if not _is_valid_name(name):
        raise InvalidFirstName('invalid User first name')


def validate_last_name(name: Optional[str]) -> None:
    if not _is_valid_name(name):
        raise InvalidLastName('invalid User last name')


def validate_email(email: Optional[str]) -> None:
    if not email or len(email) > MAX_EMAIL_LENGTH \
            or not _EMAIL.fullmatch(email):
        raise InvalidEmail('invalid User email')


def validate_password(password: Optional[str]) -> None:
    """
    Check a password presented for authentication.

    Passwords that are blank, or longer than bcrypt can hash, are invalid.
    """
    if not password or not password.strip() \
            or len(password.encode('utf-8')) > MAX_PASSWORD_BYTES:
        raise InvalidPassword('invalid User password')


def validate_new_password(password: Optional[str]) -> None:
    """Check a password that is about to be hashed and stored."""
    validate_password(password)
    if password.strip() != password:
        raise InvalidPassword('invalid User password')


def validate_organization(organization: Optional[str]) -> None:
    if not organization:
        raise InvalidOrganization('invalid User organization')


def validate_uuid(uuid: Optional[str]) -> None:
    """
    Ensure that ``uuid`` is a ULID in its canonical lower-case form.

    Raises
    ------
    :class:`InvalidUUID`

    """
    if not uuid or not is_uuid(uuid):
        raise InvalidUUID('invalid uuid')


def validate_user(user: domain.User, password: Optional[str]) -> None:
    """Validate every field required to create a new account."""
    validate_first_name(user.first_name)
    validate_last_name(user.last_name)
    validate_email(user.email)
    validate_new_password(password)
    validate_organization(user.organization)


def validate_user_update(user: domain.User,
                         password: Optional[str] = None) -> None:
    """
    Validate the fields supplied in an update request.

    Only non-empty fields are applied by an update, so only those are
    checked here.
    """
    validate_uuid(user.uuid)
    if user.first_name:
        validate_first_name(user.first_name)
    if user.last_name:
        validate_last_name(user.last_name)
    if user.email:
        validate_email(user.email)
    if user.organization:
        validate_organization(user.organization)
    if password is not None and password != '':
        validate_new_password(password)
