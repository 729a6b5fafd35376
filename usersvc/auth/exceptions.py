"""Exceptions raised while issuing or verifying tokens."""


class MissingToken(RuntimeError):
    """No token was presented."""


class UnknownToken(RuntimeError):
    """No stored record matches the presented token."""


class InvalidToken(RuntimeError):
    """Token is malformed, forged, or does not match its record."""


class ExpiredToken(RuntimeError):
    """The secret under which the token was issued has expired."""


class NoSuchEmailToken(RuntimeError):
    """No stored record matches the presented email token."""


class ExpiredEmailToken(RuntimeError):
    """Email token has passed its expiration."""
