"""Defines user account and credential concepts for the user service."""

from typing import Any, NamedTuple, Optional
from datetime import datetime
from pytz import UTC


class User(NamedTuple):
    """Represents a user account, without its password digest."""

    uuid: Optional[str] = None
    """Unique identifier for the account. If ``None``, it does not exist."""

    first_name: str = ''
    """First name or given name."""

    last_name: str = ''
    """Last name or family name."""

    email: str = ''
    """The committed (verified or original) e-mail address."""

    organization: str = ''
    """Institutional affiliation."""

    created_date: Optional[datetime] = None
    """When the account was created."""

    modified_date: Optional[datetime] = None
    """When the account was last updated, if ever."""

    is_verified: bool = False
    """Whether or not the user has proven control of an e-mail address."""

    prospective_email: Optional[str] = None
    """New e-mail address awaiting confirmation by an email token."""


class Secret(NamedTuple):
    """Signing-key material used to issue and validate auth tokens."""

    key: str
    """URL-safe base64-encoded random bytes."""

    created_timestamp: datetime
    """When the secret was generated."""

    expiration_timestamp: datetime
    """The Monday 03:00 UTC boundary after which the secret is invalid."""

    @property
    def expired(self) -> bool:
        """Expired if the current time is later than the expiration."""
        return datetime.now(tz=UTC) >= self.expiration_timestamp


class Identification(NamedTuple):
    """An auth token paired with the secret that signed it."""

    token: str
    """Opaque token presented by clients."""

    secret: Secret
    """The secret under which ``token`` was issued."""

    uuid: Optional[str] = None
    """The account to which the token belongs."""


class EmailToken(NamedTuple):
    """Proof-of-control token for an e-mail address."""

    token: str
    uuid: str
    created_timestamp: datetime
    expiration_timestamp: datetime

    @property
    def expired(self) -> bool:
        """Expired if the current time is later than the expiration."""
        return datetime.now(tz=UTC) > self.expiration_timestamp


def to_dict(obj: tuple) -> dict:
    """
    Generate a dict representation of a NamedTuple instance.

    Child NamedTuples are cast recursively, and datetimes are rendered in
    ISO-8601 format, so that the result can be serialized as JSON.

    Parameters
    ----------
    obj : tuple
        A NamedTuple instance.

    Returns
    -------
    dict

    """
    if not hasattr(obj, '_asdict'):  # NamedTuple-generated classes have this.
        return {}

    def _cast(value: Any) -> Any:
        if hasattr(value, '_asdict'):
            value = to_dict(value)
        elif isinstance(value, datetime):
            value = value.isoformat()
        elif isinstance(value, list):
            value = [_cast(o) for o in value]
        return value

    return {key: _cast(value) for key, value in obj._asdict().items()}
