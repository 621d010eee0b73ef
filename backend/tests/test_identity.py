"""Tests for token verification."""

from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone

import jwt

from app.config import Settings
from app.services.errors import AuthenticationError
from app.services.identity import Identity, issue_token, verify_token


class VerifyTokenTests(unittest.TestCase):
    def setUp(self) -> None:
        self.settings = Settings(jwt_secret="unit-test-secret")

    def _encode(self, claims: dict, secret: str | None = None) -> str:
        return jwt.encode(claims, secret or self.settings.jwt_secret, algorithm="HS256")

    def test_round_trips_login_token_claims(self) -> None:
        token = self._encode({"id": 7, "email": "user", "role": "user"})

        identity = verify_token(token, self.settings)

        self.assertEqual(identity, Identity(participant_id=7, role="user"))
        self.assertFalse(identity.is_admin)

    def test_issue_token_is_accepted(self) -> None:
        identity = Identity(participant_id=1, role="admin")
        self.assertEqual(verify_token(issue_token(identity, self.settings), self.settings), identity)

    def test_rejects_wrong_secret(self) -> None:
        with self.assertRaises(AuthenticationError):
            verify_token(self._encode({"id": 7, "role": "user"}, secret="someone-else"), self.settings)

    def test_rejects_expired_token(self) -> None:
        expired = datetime.now(timezone.utc) - timedelta(hours=1)
        with self.assertRaises(AuthenticationError):
            verify_token(self._encode({"id": 7, "role": "user", "exp": expired}), self.settings)

    def test_rejects_missing_or_unknown_claims(self) -> None:
        with self.assertRaises(AuthenticationError):
            verify_token(self._encode({"role": "user"}), self.settings)
        with self.assertRaises(AuthenticationError):
            verify_token(self._encode({"id": 7, "role": "superuser"}), self.settings)
        with self.assertRaises(AuthenticationError):
            verify_token(self._encode({"id": "abc", "role": "admin"}), self.settings)


if __name__ == "__main__":
    unittest.main()
