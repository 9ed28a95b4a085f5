"""Unit tests for password hashing and access tokens."""

import pytest

from rukun.services.auth_service import (
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)
from rukun.services.errors import UnauthorizedError


class TestPasswords:
    """Test bcrypt password hashing."""

    def test_hash_is_not_plaintext(self):
        """Test the stored hash never equals the password."""
        hashed = hash_password("rahasia123")
        assert hashed != "rahasia123"
        assert hashed.startswith("$2")

    def test_verify_correct_password(self):
        hashed = hash_password("rahasia123")
        assert verify_password("rahasia123", hashed) is True

    def test_verify_wrong_password(self):
        hashed = hash_password("rahasia123")
        assert verify_password("salah12345", hashed) is False

    def test_verify_against_garbage_hash(self):
        """Test a corrupt stored hash is treated as a mismatch."""
        assert verify_password("rahasia123", "not-a-bcrypt-hash") is False

    def test_long_password_truncated_consistently(self):
        """Test passwords over 72 bytes still verify."""
        password = "x" * 100
        assert verify_password(password, hash_password(password)) is True


class TestAccessTokens:
    """Test signed access tokens."""

    def test_roundtrip_claims(self):
        """Test subject and role survive encoding."""
        claims = decode_access_token(create_access_token(7, "bendahara"))
        assert claims["sub"] == 7
        assert claims["role"] == "bendahara"
        assert claims["exp"] > 0

    def test_tampered_signature(self):
        token = create_access_token(7, "warga")
        payload, signature = token.split(".", 1)
        tampered = f"{payload}.{'0' * len(signature)}"
        with pytest.raises(UnauthorizedError):
            decode_access_token(tampered)

    def test_tampered_payload(self):
        """Test swapping the payload of another token fails verification."""
        warga = create_access_token(7, "warga")
        admin = create_access_token(1, "admin")
        forged = f"{admin.split('.')[0]}.{warga.split('.')[1]}"
        with pytest.raises(UnauthorizedError):
            decode_access_token(forged)

    def test_expired_token(self):
        token = create_access_token(7, "warga", ttl_seconds=-10)
        with pytest.raises(UnauthorizedError, match="expired"):
            decode_access_token(token)

    @pytest.mark.parametrize("token", ["", "no-dot", "a.b.c"])
    def test_malformed_token(self, token):
        with pytest.raises(UnauthorizedError):
            decode_access_token(token)

    def test_other_secret_rejected(self, monkeypatch):
        """Test tokens signed with a different SECRET_KEY are rejected."""
        from rukun.config import reset_settings

        token = create_access_token(7, "warga")
        monkeypatch.setenv("SECRET_KEY", "another-secret")
        reset_settings()
        with pytest.raises(UnauthorizedError):
            decode_access_token(token)
