from dataclasses import replace
from datetime import timedelta

import pytest

from todofolio.errors import UnauthorizedError
from todofolio.security import (
    create_access_token,
    decode_access_token,
    extract_bearer_token,
    generate_reset_token,
    hash_password,
    hash_token,
    parse_duration,
    verify_password,
)


class TestDurations:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("30", timedelta(seconds=30)),
            ("30s", timedelta(seconds=30)),
            ("15m", timedelta(minutes=15)),
            ("12h", timedelta(hours=12)),
            ("7d", timedelta(days=7)),
            (" 2D ", timedelta(days=2)),
        ],
    )
    def test_parse(self, value, expected):
        assert parse_duration(value) == expected

    @pytest.mark.parametrize("value", ["", "7w", "-1d", "soon"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_duration(value)


class TestTokens:
    def test_round_trip(self, settings):
        token = create_access_token("user-1", settings, extra={"scope": "todos"})
        claims = decode_access_token(token, settings)
        assert claims["sub"] == "user-1"
        assert claims["iss"] == settings.jwt_issuer
        assert claims["aud"] == settings.jwt_audience
        assert claims["scope"] == "todos"

    def test_wrong_secret_or_audience(self, settings):
        token = create_access_token("user-1", settings)
        with pytest.raises(UnauthorizedError) as exc:
            decode_access_token(token, replace(settings, jwt_secret="other"))
        assert exc.value.message == "Invalid or malformed token"

        with pytest.raises(UnauthorizedError):
            decode_access_token(token, replace(settings, jwt_audience="someone-else"))

    def test_expired(self, settings):
        token = create_access_token("user-1", replace(settings, jwt_expires_in="0s"))
        with pytest.raises(UnauthorizedError) as exc:
            decode_access_token(token, settings)
        assert exc.value.message == "Token has expired"

    @pytest.mark.parametrize(
        "header,expected",
        [
            (None, None),
            ("", None),
            ("Bearer abc", "abc"),
            ("bearer abc", None),
            ("Bearer", None),
            ("Bearer a b", None),
            ("Basic abc", None),
        ],
    )
    def test_extract_bearer_token(self, header, expected):
        assert extract_bearer_token(header) == expected


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("Secret@123", 1000)
        assert hashed.startswith("pbkdf2_sha256$1000$")
        assert verify_password("Secret@123", hashed)
        assert not verify_password("secret@123", hashed)

    def test_salted(self):
        assert hash_password("Secret@123", 1000) != hash_password("Secret@123", 1000)

    def test_unknown_format(self):
        assert not verify_password("x", "plaintext")
        assert not verify_password("x", "md5$1$salt$abc")

    @pytest.mark.parametrize(
        "stored",
        [
            "pbkdf2_sha256$many$salt$00",
            "pbkdf2_sha256$0$salt$00",
            "pbkdf2_sha256$1000$sält$00",
            "pbkdf2_sha256$1$salt$ü",
        ],
    )
    def test_corrupt_hash_is_rejected(self, stored):
        assert verify_password("Secret@123", stored) is False

    def test_reset_token_pair(self):
        raw, hashed = generate_reset_token()
        assert len(raw) == 64
        assert hashed == hash_token(raw)
        assert hashed != raw
