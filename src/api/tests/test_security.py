"""Tests for the bearer token guard."""

import unittest
from datetime import datetime, timedelta, timezone

from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient

from adapter.fake.store import FakeStore
from api.security import BearerGuard, authenticate_header, parse_bearer_header
from config import AuthConfig
from domain.model.errors import AuthenticationError
from services.auth_service import AuthManager
from services.password_hasher import PasswordHasher

SECRET = 'guard-secret'


def _manager() -> AuthManager:
    return AuthManager(FakeStore(), AuthConfig(secret=SECRET), hasher=PasswordHasher(rounds=4))


class TestParseBearerHeader(unittest.TestCase):

    def test_valid_header(self):
        self.assertEqual(parse_bearer_header('Bearer abc.def.ghi'), 'abc.def.ghi')

    def test_missing_header(self):
        for value in [None, '']:
            with self.subTest(value=value):
                with self.assertRaises(AuthenticationError) as ctx:
                    parse_bearer_header(value)
                self.assertEqual(str(ctx.exception), 'missing header')

    def test_malformed_header(self):
        for value in ['abc', 'Basic abc', 'Bearer', 'Bearer ', 'Bearer a b', 'bearer abc', 'Bearer  abc']:
            with self.subTest(value=value):
                with self.assertRaises(AuthenticationError) as ctx:
                    parse_bearer_header(value)
                self.assertEqual(str(ctx.exception), 'malformed header')


class TestAuthenticateHeader(unittest.TestCase):

    def setUp(self):
        self.manager = _manager()
        self.user, self.token = self.manager.signup('a@x.com', 'pw')

    def test_valid_token_resolves_subject(self):
        self.assertEqual(authenticate_header(f'Bearer {self.token}', self.manager), self.user.id)

    def test_any_token_failure_collapses(self):
        expired = self.manager.tokens.issue(
            self.user.id, SECRET, 1, now=datetime.now(timezone.utc) - timedelta(hours=1)
        )
        foreign = self.manager.tokens.issue(self.user.id, 'other-secret', 60)
        for token in ['garbage', expired, foreign]:
            with self.subTest(token=token):
                with self.assertRaises(AuthenticationError) as ctx:
                    authenticate_header(f'Bearer {token}', self.manager)
                self.assertEqual(str(ctx.exception), 'invalid or expired token')


class TestBearerGuard(unittest.TestCase):

    def setUp(self):
        self.manager = _manager()
        self.user, self.token = self.manager.signup('a@x.com', 'pw')
        guard = BearerGuard(self.manager)

        app = FastAPI()

        @app.get('/me')
        def me(request: Request, user_id: str = Depends(guard)):
            return {'user_id': user_id, 'state_user_id': request.state.user_id}

        self.client = TestClient(app)

    def test_valid_token_attaches_subject(self):
        response = self.client.get('/me', headers={'Authorization': f'Bearer {self.token}'})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'user_id': self.user.id, 'state_user_id': self.user.id})

    def test_missing_header_is_401(self):
        response = self.client.get('/me')

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['detail'], 'missing header')
        self.assertEqual(response.headers['www-authenticate'], 'Bearer')

    def test_malformed_header_is_401(self):
        response = self.client.get('/me', headers={'Authorization': f'Token {self.token}'})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['detail'], 'malformed header')

    def test_invalid_token_is_401(self):
        response = self.client.get('/me', headers={'Authorization': 'Bearer nope'})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['detail'], 'invalid or expired token')


if __name__ == '__main__':
    unittest.main()
