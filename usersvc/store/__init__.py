"""
Relational persistence for user accounts and auth-token state.

:mod:`.util` provides the :class:`.Database` handle and transaction
management; :mod:`.accounts` provides data access for account rows.
"""

from .util import Database, now, epoch, from_epoch
from .exceptions import NoSuchUser, EmailAlreadyExists, StoreUnavailable
