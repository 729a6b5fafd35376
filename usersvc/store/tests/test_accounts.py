"""Tests for :mod:`usersvc.store.accounts`."""

from contextlib import ExitStack
from unittest import TestCase

from ... import domain
from ...identifiers import generate_uuid
from .. import accounts
from ..exceptions import NoSuchUser, EmailAlreadyExists
from ..models import DBAccount, DBEmailToken
from .util import temporary_db


def new_user(email: str, **fields) -> domain.User:
    """Helper to build a user with a fresh identifier."""
    data = dict(uuid=generate_uuid(), first_name='Lisa', last_name='Kim',
                email=email, organization='Uminomiya')
    data.update(fields)
    return domain.User(**data)


class SetUpDatabaseMixin(object):
    """Mixin providing a temporary database."""

    def setUp(self):
        """Set up the database."""
        stack = ExitStack()
        self.database = stack.enter_context(temporary_db())
        self.addCleanup(stack.close)


class TestInsertUser(SetUpDatabaseMixin, TestCase):
    """Tests for :func:`.accounts.insert_user`."""

    def test_insert_and_get(self):
        """A new account can be loaded back, without its digest."""
        user = new_user('lisa@example.com', first_name='  Lisa ')
        with self.database.transaction() as session:
            created = accounts.insert_user(session, user, 'digest')

        self.assertEqual(created.uuid, user.uuid)
        self.assertEqual(created.first_name, 'Lisa', 'Name is trimmed')
        self.assertFalse(created.is_verified)
        self.assertIsNone(created.modified_date)
        self.assertIsNotNone(created.created_date)

        with self.database.transaction() as session:
            loaded = accounts.get_user(session, user.uuid)
            self.assertTrue(accounts.user_exists(session, user.uuid))
        self.assertEqual(loaded, created)
        self.assertNotIn('password', loaded._asdict())

    def test_duplicate_email(self):
        """Two accounts cannot share an e-mail address."""
        with self.database.transaction() as session:
            accounts.insert_user(session, new_user('dup@example.com'), 'd')
        with self.assertRaises(EmailAlreadyExists):
            with self.database.transaction() as session:
                accounts.insert_user(session, new_user('dup@example.com'),
                                     'd')

    def test_email_of_pending_change(self):
        """An address awaiting confirmation elsewhere is taken."""
        with self.database.transaction() as session:
            session.add(DBAccount(
                uuid=generate_uuid(), first_name='A', last_name='B',
                email='a@example.com', password='d', organization='O',
                created_date=0, is_verified=True,
                prospective_email='pending@example.com'
            ))
        with self.assertRaises(EmailAlreadyExists):
            with self.database.transaction() as session:
                accounts.insert_user(session,
                                     new_user('pending@example.com'), 'd')


class TestGetUser(SetUpDatabaseMixin, TestCase):
    """Tests for :func:`.accounts.get_user` and friends."""

    def test_no_such_user(self):
        """An unknown identifier raises :class:`.NoSuchUser`."""
        with self.database.transaction() as session:
            self.assertFalse(accounts.user_exists(session, generate_uuid()))
            with self.assertRaises(NoSuchUser):
                accounts.get_user(session, generate_uuid())

    def test_get_by_email(self):
        """Lookup by e-mail returns the stored digest too."""
        user = new_user('mail@example.com')
        with self.database.transaction() as session:
            accounts.insert_user(session, user, 'thedigest')
        with self.database.transaction() as session:
            loaded, digest = accounts.get_user_by_email(session,
                                                        'mail@example.com')
            with self.assertRaises(NoSuchUser):
                accounts.get_user_by_email(session, 'nope@example.com')
        self.assertEqual(loaded.uuid, user.uuid)
        self.assertEqual(digest, 'thedigest')


class TestUpdateUser(SetUpDatabaseMixin, TestCase):
    """Tests for :func:`.accounts.update_user`."""

    def setUp(self):
        """Create an account to update."""
        super(TestUpdateUser, self).setUp()
        self.user = new_user('old@example.com')
        with self.database.transaction() as session:
            accounts.insert_user(session, self.user, 'digest')

    def test_empty_fields_are_ignored(self):
        """Only non-empty fields are applied."""
        with self.database.transaction() as session:
            updated, changed = accounts.update_user(
                session, domain.User(uuid=self.user.uuid, last_name='Park')
            )
        self.assertFalse(changed)
        self.assertEqual(updated.first_name, 'Lisa')
        self.assertEqual(updated.last_name, 'Park')
        self.assertEqual(updated.organization, 'Uminomiya')
        self.assertIsNotNone(updated.modified_date)

    def test_email_change_is_prospective(self):
        """A new address is held until confirmed."""
        with self.database.transaction() as session:
            updated, changed = accounts.update_user(
                session,
                domain.User(uuid=self.user.uuid, email='new@example.com')
            )
        self.assertTrue(changed)
        self.assertEqual(updated.email, 'old@example.com')
        self.assertEqual(updated.prospective_email, 'new@example.com')

    def test_change_back_withdraws_pending_email(self):
        """Asking for the committed address drops a pending change."""
        with self.database.transaction() as session:
            accounts.update_user(session, domain.User(
                uuid=self.user.uuid, email='new@example.com'
            ))
            session.add(DBEmailToken(token='pending', uuid=self.user.uuid,
                                     created_timestamp=0,
                                     expiration_timestamp=0))

        with self.database.transaction() as session:
            updated, changed = accounts.update_user(session, domain.User(
                uuid=self.user.uuid, email='old@example.com'
            ))
        self.assertFalse(changed)
        self.assertEqual(updated.email, 'old@example.com')
        self.assertIsNone(updated.prospective_email)
        with self.database.transaction() as session:
            self.assertIsNone(session.get(DBEmailToken, 'pending'))
            self.assertFalse(accounts.email_exists(session,
                                                   'new@example.com'))

    def test_password_digest_is_replaced(self):
        """A new digest replaces the old one."""
        with self.database.transaction() as session:
            accounts.update_user(session, domain.User(uuid=self.user.uuid),
                                 'newdigest')
        with self.database.transaction() as session:
            _, digest = accounts.get_credentials(session, self.user.uuid)
        self.assertEqual(digest, 'newdigest')

    def test_email_conflicts(self):
        """Committed and prospective addresses of others are both taken."""
        other = new_user('other@example.com')
        with self.database.transaction() as session:
            accounts.insert_user(session, other, 'digest')
            accounts.update_user(session, domain.User(
                uuid=other.uuid, email='otherpending@example.com'
            ))

        for email in ('other@example.com', 'otherpending@example.com'):
            with self.assertRaises(EmailAlreadyExists):
                with self.database.transaction() as session:
                    accounts.update_user(session, domain.User(
                        uuid=self.user.uuid, email=email
                    ))

    def test_no_such_user(self):
        """Updating an unknown account raises :class:`.NoSuchUser`."""
        with self.assertRaises(NoSuchUser):
            with self.database.transaction() as session:
                accounts.update_user(session, domain.User(
                    uuid=generate_uuid(), first_name='Nobody'
                ))


class TestDeleteUser(SetUpDatabaseMixin, TestCase):
    """Tests for :func:`.accounts.delete_user`."""

    def test_delete(self):
        """A deleted account is gone."""
        user = new_user('gone@example.com')
        with self.database.transaction() as session:
            accounts.insert_user(session, user, 'digest')
        with self.database.transaction() as session:
            accounts.delete_user(session, user.uuid)
        with self.database.transaction() as session:
            self.assertFalse(accounts.user_exists(session, user.uuid))
            self.assertFalse(accounts.email_exists(session,
                                                   'gone@example.com'))

    def test_delete_unknown(self):
        """Deleting an unknown account raises :class:`.NoSuchUser`."""
        with self.assertRaises(NoSuchUser):
            with self.database.transaction() as session:
                accounts.delete_user(session, generate_uuid())
