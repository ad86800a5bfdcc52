"""Unit tests for JWT access token creation and decoding."""

from datetime import timedelta

import pytest
from jose import JWTError, jwt

from studio_ledger.auth.jwt import create_access_token, decode_token
from studio_ledger.config import settings


class TestCreateAccessToken:
    def test_contains_type_and_subject(self):
        payload = decode_token(create_access_token({"sub": "user-123"}))
        assert payload["type"] == "access"
        assert payload["sub"] == "user-123"

    def test_contains_timestamps(self):
        payload = decode_token(create_access_token({"sub": "user-123"}))
        assert payload["exp"] > payload["iat"]

    def test_does_not_mutate_input(self):
        data = {"sub": "user-123"}
        create_access_token(data)
        assert data == {"sub": "user-123"}


class TestDecodeToken:
    def test_expired_token_rejected(self):
        token = create_access_token({"sub": "user-123"}, expires_delta=timedelta(seconds=-1))
        with pytest.raises(JWTError):
            decode_token(token)

    def test_foreign_secret_rejected(self):
        token = jwt.encode({"sub": "user-123", "type": "access"}, "another-secret", algorithm=settings.jwt_algorithm)
        with pytest.raises(JWTError):
            decode_token(token)

    def test_garbage_rejected(self):
        with pytest.raises(JWTError):
            decode_token("not.a.jwt")
