"""Exceptions raised by the account store."""


class NoSuchUser(RuntimeError):
    """User does not exist."""


class EmailAlreadyExists(RuntimeError):
    """E-mail address is in use by another account."""


class StoreUnavailable(RuntimeError):
    """The relational store cannot be reached."""
