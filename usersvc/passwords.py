"""Password hashing and verification."""

import bcrypt

DEFAULT_ROUNDS = 12

MAX_PASSWORD_BYTES = 72
"""bcrypt only reads this many bytes of a password."""


class PasswordAuthenticationFailed(RuntimeError):
    """Password is not correct."""


def hash_password(password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """
    Generate a salted bcrypt hash of a password.

    Raises
    ------
    :class:`ValueError`
        If the password is longer than :data:`MAX_PASSWORD_BYTES` encoded.

    """
    raw = password.encode('utf-8')
    if len(raw) > MAX_PASSWORD_BYTES:
        raise ValueError('password is too long')
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(raw, salt).decode('ascii')


def check_password(password: str, encrypted: str) -> None:
    """
    Check a password against an encrypted hash.

    Raises
    ------
    :class:`PasswordAuthenticationFailed`
        If the password does not match, is longer than any password that
        could have been hashed, or if the stored hash is malformed.

    """
    raw = password.encode('utf-8')
    if len(raw) > MAX_PASSWORD_BYTES:
        raise PasswordAuthenticationFailed('Incorrect password')
    try:
        matches = bcrypt.checkpw(raw, encrypted.encode('ascii'))
    except ValueError as e:
        raise PasswordAuthenticationFailed('Malformed password hash') from e
    if not matches:
        raise PasswordAuthenticationFailed('Incorrect password')
