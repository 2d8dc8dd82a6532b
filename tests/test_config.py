"""Tests for settings parsing and validation."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from userhub.config import Settings, parse_duration


class TestParseDuration:
    """Tests for token lifetime strings."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("15m", timedelta(minutes=15)),
            ("10d", timedelta(days=10)),
            ("2w", timedelta(weeks=2)),
            ("1h", timedelta(hours=1)),
            ("30s", timedelta(seconds=30)),
            ("900", timedelta(seconds=900)),
            (" 5M ", timedelta(minutes=5)),
            (45, timedelta(seconds=45)),
        ],
    )
    def test_accepts_supported_units(self, value, expected):
        assert parse_duration(value) == expected

    @pytest.mark.parametrize("value", ["", "abc", "1y", "-5m", "1.5h", None, True])
    def test_rejects_malformed_values(self, value):
        with pytest.raises(ValueError):
            parse_duration(value)

    @pytest.mark.parametrize("value", ["0", "0m", 0])
    def test_rejects_zero_duration(self, value):
        with pytest.raises(ValueError):
            parse_duration(value)


class TestSettings:
    """Tests for the Settings model."""

    def test_missing_secrets_are_generated_and_distinct(self):
        """Unset secrets fall back to random per-process values."""
        settings = Settings()
        assert settings.access_token_secret
        assert settings.refresh_token_secret
        assert settings.access_token_secret != settings.refresh_token_secret

    def test_identical_secrets_are_rejected(self):
        with pytest.raises(ValidationError):
            Settings(access_token_secret="same-secret", refresh_token_secret="same-secret")

    def test_token_ttls_follow_expiry_strings(self):
        settings = Settings(access_token_expiry="5m", refresh_token_expiry="7d")
        assert settings.access_token_ttl == timedelta(minutes=5)
        assert settings.refresh_token_ttl == timedelta(days=7)

    def test_invalid_expiry_is_rejected(self):
        with pytest.raises(ValidationError):
            Settings(access_token_expiry="soon")

    def test_samesite_is_normalized(self):
        assert Settings(cookie_samesite="Strict").cookie_samesite == "strict"

    def test_invalid_samesite_is_rejected(self):
        with pytest.raises(ValidationError):
            Settings(cookie_samesite="sometimes")

    def test_cors_origins_accept_comma_separated_string(self):
        settings = Settings(cors_allow_origins="https://a.example, https://b.example,")
        assert settings.cors_allow_origins == ["https://a.example", "https://b.example"]


class TestSettingsFromEnv:
    """Tests for environment and .env loading."""

    def test_environment_variables_are_read(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("ACCESS_TOKEN_EXPIRY", "1h")
        monkeypatch.setenv("COOKIE_SECURE", "false")
        monkeypatch.setenv("USE_MEMORY_STORE", "true")

        settings = Settings.from_env()

        assert settings.access_token_ttl == timedelta(hours=1)
        assert settings.cookie_secure is False
        assert settings.use_memory_store is True

    def test_dotenv_file_is_used_when_env_is_unset(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("JWT_ISSUER", raising=False)
        (tmp_path / ".env").write_text("JWT_ISSUER=from-dotenv\n")

        assert Settings.from_env().jwt_issuer == "from-dotenv"

    def test_environment_wins_over_dotenv(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("JWT_ISSUER", "from-env")
        (tmp_path / ".env").write_text("JWT_ISSUER=from-dotenv\n")

        assert Settings.from_env().jwt_issuer == "from-env"
