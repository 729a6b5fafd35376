"""Tests for :mod:`usersvc.routes` through the Flask test client."""

from unittest import TestCase
import shutil
import tempfile

from .. import status
from ..factory import create_web_app
from ..store.models import DBEmailToken

USER = {
    'first_name': 'Lisa',
    'last_name': 'Kim',
    'email': 'lisa@example.com',
    'organization': 'Uminomiya',
    'password': '12345678',
}


class TestRoutes(TestCase):
    """Exercise every operation over HTTP."""

    def setUp(self):
        """Create an app over a temporary database."""
        self.db_path = tempfile.mkdtemp()
        self.app = create_web_app({
            'DATABASE_URI': f'sqlite:///{self.db_path}/test.db',
            'CREATE_DB': True,
            'BCRYPT_ROUNDS': 4,
            'MAIL_HOST': '',
            'LOG_JSON': False,
        })
        self.service = self.app.extensions['user_service']
        self.client = self.app.test_client()

    def tearDown(self):
        """Drop the database."""
        self.service.database.drop_all()
        self.service.close()
        shutil.rmtree(self.db_path, ignore_errors=True)

    def create(self, **fields):
        data = dict(USER)
        data.update(fields)
        response = self.client.post('/users', json=data)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED,
                         response.get_json())
        return response.get_json()['user']

    def test_status(self):
        """The service reports OK, or 503 when locked."""
        response = self.client.get('/status')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.get_json()['code'], 'OK')

        self.service.state.mark_unavailable()
        response = self.client.get('/status')
        self.assertEqual(response.status_code,
                         status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertEqual(response.get_json()['code'], 'UNAVAILABLE')

    def test_create_and_get(self):
        """A created account can be read back without its password."""
        user = self.create()
        self.assertEqual(user['email'], 'lisa@example.com')
        self.assertFalse(user['is_verified'])
        self.assertNotIn('password', user)

        response = self.client.get(f'/users/{user["uuid"]}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.get_json()['user'], user)

    def test_create_errors(self):
        """Bad input is 400; a duplicate address is 409."""
        response = self.client.post('/users')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.get_json()['code'], 'INVALID_ARGUMENT')
        self.assertEqual(response.get_json()['reason'], 'nil request User')

        self.create()
        response = self.client.post('/users', json=USER)
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.get_json()['reason'], 'email already exists')

    def test_get_errors(self):
        """Bad identifiers are 400; unknown ones are 404."""
        response = self.client.get('/users/nope')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.get('/users/01arz3ndektsv4rrffq69g5fav')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_update_and_delete(self):
        """Accounts can be patched and deleted."""
        user = self.create()
        response = self.client.patch(f'/users/{user["uuid"]}',
                                     json={'last_name': 'Park'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.get_json()['user']['last_name'], 'Park')
        self.assertEqual(response.get_json()['user']['first_name'], 'Lisa')

        response = self.client.delete(f'/users/{user["uuid"]}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        response = self.client.get(f'/users/{user["uuid"]}')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_authenticate(self):
        """Correct credentials are 200; a wrong password is 401."""
        self.create()
        response = self.client.post('/authenticate', json={
            'email': USER['email'], 'password': USER['password']
        })
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        response = self.client.post('/authenticate', json={
            'email': USER['email'], 'password': 'wrong'
        })
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_tokens(self):
        """A token is issued, reissued unchanged, and verified."""
        user = self.create()
        credentials = {'uuid': user['uuid'], 'email': USER['email'],
                       'password': USER['password']}
        first = self.client.post('/tokens', json=credentials).get_json()
        second = self.client.post('/tokens', json=credentials).get_json()
        self.assertEqual(first['identification'], second['identification'])

        token = first['identification']['token']
        response = self.client.post('/tokens/verify', json={'token': token})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.get_json()['identification']['uuid'],
                         user['uuid'])

        response = self.client.post('/tokens/verify', json={})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        response = self.client.post('/tokens/verify', json={'token': 'x'})
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_verify_email_link(self):
        """The link sent by e-mail verifies the account."""
        user = self.create()
        with self.service.database.transaction() as session:
            token = session.query(DBEmailToken) \
                .filter(DBEmailToken.uuid == user['uuid']) \
                .one().token

        response = self.client.get('/email-tokens/verify',
                                   query_string={'token': token})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.get_json()['user']['is_verified'])

        response = self.client.post('/email-tokens/verify',
                                    json={'token': token})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        response = self.client.post('/email-tokens/verify', json={})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_secrets(self):
        """The active secret changes when a new one is made."""
        first = self.client.get('/secrets/active').get_json()['secret']
        response = self.client.post('/secrets')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        second = self.client.get('/secrets/active').get_json()['secret']
        self.assertNotEqual(first['key'], second['key'])
        self.assertIn('expiration_timestamp', second)

    def test_unknown_route(self):
        """Unknown paths are rendered as JSON."""
        response = self.client.get('/nope')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertIn('reason', response.get_json())
