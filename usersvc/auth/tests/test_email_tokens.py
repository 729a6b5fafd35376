"""Tests for :mod:`usersvc.auth.email_tokens`."""

from contextlib import ExitStack
from unittest import TestCase

from ... import domain
from ...identifiers import generate_uuid
from ...locks import IdentityLockTable
from ...store import accounts
from ...store.exceptions import NoSuchUser
from ...store.models import DBAccount, DBEmailToken
from ...store.tests.util import temporary_db
from ...validation import ValidationError
from .. import email_tokens
from ..exceptions import NoSuchEmailToken, ExpiredEmailToken


class TestEmailTokenManager(TestCase):
    """Tests for :class:`.email_tokens.EmailTokenManager`."""

    def setUp(self):
        """Set up the database, and an unverified account."""
        stack = ExitStack()
        self.database = stack.enter_context(temporary_db())
        self.addCleanup(stack.close)
        self.locks = IdentityLockTable()
        self.manager = email_tokens.EmailTokenManager(self.database,
                                                      self.locks)
        self.expired_manager = email_tokens.EmailTokenManager(
            self.database, self.locks, duration=-60
        )

        self.uuid = generate_uuid()
        with self.database.transaction() as session:
            accounts.insert_user(session, domain.User(
                uuid=self.uuid, first_name='Lisa', last_name='Kim',
                email='lisa@example.com', organization='Uminomiya'
            ), 'digest')

    def get_account(self):
        with self.database.transaction() as session:
            return accounts.get_user(session, self.uuid)

    def count_tokens(self):
        with self.database.transaction() as session:
            return session.query(DBEmailToken).count()

    def set_verified_with_pending_email(self, email):
        with self.database.transaction() as session:
            db_account = session.get(DBAccount, self.uuid)
            db_account.is_verified = True
            db_account.prospective_email = email

    def test_issue(self):
        """A token is URL-safe and expires after the configured duration."""
        issued = self.manager.issue(self.uuid)
        self.assertEqual(issued.uuid, self.uuid)
        self.assertEqual(len(issued.token), 44)
        self.assertEqual(
            (issued.expiration_timestamp - issued.created_timestamp)
            .total_seconds(),
            email_tokens.DEFAULT_DURATION
        )
        self.assertFalse(issued.expired)

    def test_issue_replaces_previous(self):
        """An account has at most one email token."""
        first = self.manager.issue(self.uuid)
        second = self.manager.issue(self.uuid)
        self.assertNotEqual(first.token, second.token)
        self.assertEqual(self.count_tokens(), 1)
        with self.assertRaises(NoSuchEmailToken):
            self.manager.verify(first.token)

    def test_verify_new_account(self):
        """A fresh token verifies its account and is consumed."""
        issued = self.manager.issue(self.uuid)
        user = self.manager.verify(issued.token)
        self.assertTrue(user.is_verified)
        self.assertEqual(user.email, 'lisa@example.com')
        self.assertTrue(self.get_account().is_verified)
        self.assertEqual(self.count_tokens(), 0)

        with self.assertRaises(NoSuchEmailToken):
            self.manager.verify(issued.token)

    def test_verify_email_change(self):
        """A fresh token promotes the prospective e-mail."""
        self.set_verified_with_pending_email('new@example.com')
        issued = self.manager.issue(self.uuid)
        user = self.manager.verify(issued.token)
        self.assertEqual(user.email, 'new@example.com')
        self.assertIsNone(user.prospective_email)
        self.assertIsNotNone(user.modified_date)
        self.assertEqual(self.get_account().email, 'new@example.com')

    def test_expired_new_account(self):
        """An expired token takes its unverified account with it."""
        issued = self.expired_manager.issue(self.uuid)
        self.assertTrue(issued.expired)
        with self.locks.shared(self.uuid):
            pass
        self.assertIn(self.uuid, self.locks)

        with self.assertRaises(ExpiredEmailToken):
            self.manager.verify(issued.token)

        with self.assertRaises(NoSuchUser):
            self.get_account()
        self.assertEqual(self.count_tokens(), 0)
        self.assertNotIn(self.uuid, self.locks)

    def test_expired_email_change(self):
        """An expired token only discards the prospective e-mail."""
        self.set_verified_with_pending_email('new@example.com')
        issued = self.expired_manager.issue(self.uuid)

        with self.assertRaises(ExpiredEmailToken):
            self.manager.verify(issued.token)

        user = self.get_account()
        self.assertTrue(user.is_verified)
        self.assertEqual(user.email, 'lisa@example.com')
        self.assertIsNone(user.prospective_email)
        self.assertEqual(self.count_tokens(), 0)

    def test_verify_missing(self):
        """No token is an invalid argument."""
        with self.assertRaises(ValidationError):
            self.manager.verify('')

    def test_verify_unknown(self):
        """An unknown token is not found."""
        with self.assertRaises(NoSuchEmailToken):
            self.manager.verify(email_tokens.generate_token())
