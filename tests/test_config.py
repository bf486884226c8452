"""Unit tests for core/config.py -- the signing-secret policy.

Covers:
- missing JWT_SECRET outside DEBUG refuses to start
- DEBUG generates a random secret long enough for HS256
- short secrets and non-positive token lifetimes are rejected
- defaults: 24-hour tokens, strict role re-check
"""

import pytest
from pydantic import ValidationError

from core.config import Settings

GOOD_SECRET = "s" * 32


class TestSecretPolicy:
    def test_missing_secret_in_production(self) -> None:
        with pytest.raises(ValidationError, match="JWT_SECRET is required"):
            Settings(_env_file=None, debug=False, jwt_secret="")

    def test_debug_generates_secret(self) -> None:
        first = Settings(_env_file=None, debug=True, jwt_secret="")
        second = Settings(_env_file=None, debug=True, jwt_secret="")
        assert len(first.jwt_secret) >= 32
        assert first.jwt_secret != second.jwt_secret

    def test_short_secret_rejected(self) -> None:
        with pytest.raises(ValidationError, match="at least 32 characters"):
            Settings(_env_file=None, debug=False, jwt_secret="short")

    def test_explicit_secret_kept(self) -> None:
        settings = Settings(_env_file=None, debug=False, jwt_secret=GOOD_SECRET)
        assert settings.jwt_secret == GOOD_SECRET

    @pytest.mark.parametrize("seconds", [0, -60])
    def test_token_lifetime_must_be_positive(self, seconds: int) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, jwt_secret=GOOD_SECRET, token_expire_seconds=seconds)


class TestDefaults:
    def test_defaults(self, monkeypatch) -> None:
        for name in ("TOKEN_EXPIRE_SECONDS", "STRICT_ROLE_CHECK", "LOGIN_RATE_LIMIT"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(_env_file=None, jwt_secret=GOOD_SECRET)
        assert settings.token_expire_seconds == 86400
        assert settings.strict_role_check is True
        assert settings.login_rate_limit == "10/minute"

    def test_environment_overrides(self, monkeypatch) -> None:
        monkeypatch.setenv("JWT_SECRET", GOOD_SECRET)
        monkeypatch.setenv("STRICT_ROLE_CHECK", "false")
        settings = Settings(_env_file=None)
        assert settings.jwt_secret == GOOD_SECRET
        assert settings.strict_role_check is False
