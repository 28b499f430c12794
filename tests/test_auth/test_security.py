"""Tests for password hashing and bearer tokens."""

from datetime import datetime, timedelta, timezone

from app.auth.security import (
    TokenPayload,
    generate_token,
    get_token_from_header,
    hash_password,
    verify_password,
    verify_token,
)


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("s3cret!")
        assert hashed != "s3cret!"
        assert verify_password("s3cret!", hashed)
        assert not verify_password("wrong", hashed)

    def test_malformed_hash_is_rejected(self):
        assert not verify_password("anything", "not-a-bcrypt-hash")


class TestTokens:
    def test_round_trip(self):
        token = generate_token(TokenPayload(user_id=7, username="abebe", role="admin"))
        payload = verify_token(token)
        assert payload == TokenPayload(user_id=7, username="abebe", role="admin")

    def test_expired_token(self):
        issued = datetime.now(timezone.utc) - timedelta(hours=25)
        token = generate_token(TokenPayload(user_id=1, username="a", role="admin"), now=issued)
        assert verify_token(token) is None

    def test_tampered_token(self):
        token = generate_token(TokenPayload(user_id=1, username="a", role="admin"))
        assert verify_token(token[:-2] + "xx") is None

    def test_header_parsing(self):
        assert get_token_from_header("Bearer abc.def") == "abc.def"
        assert get_token_from_header("Basic abc") is None
        assert get_token_from_header(None) is None
