"""Tests for settings and the .env loader."""

import pytest

from gcal_utils.config import DEFAULT_TIMEOUT, OOB_REDIRECT_URL, CalendarSettings, load_env_file

GCAL_VARS = (
    "GCAL_CLIENT_ID",
    "GCAL_CLIENT_SECRET",
    "GCAL_REDIRECT_URL",
    "GCAL_REFRESH_TOKEN",
    "GCAL_CALENDAR_ID",
    "GCAL_TIMEOUT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # setenv first so values written by load_env_file are removed on undo
    for name in GCAL_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


class TestLoadEnvFile:
    """Test .env parsing."""

    def test_missing_file(self, tmp_path):
        """Should load nothing from a missing file."""
        assert load_env_file(tmp_path / ".env") == {}

    def test_parses_values(self, tmp_path, monkeypatch):
        """Should skip comments and strip quotes."""
        env_file = tmp_path / ".env"
        env_file.write_text(
            "# comment\n"
            "GCAL_CLIENT_ID='quoted-id'\n"
            'GCAL_CLIENT_SECRET="secret"\n'
            "not a pair\n"
        )

        loaded = load_env_file(env_file)

        assert loaded == {"GCAL_CLIENT_ID": "quoted-id", "GCAL_CLIENT_SECRET": "secret"}

    def test_existing_variables_win(self, tmp_path, monkeypatch):
        """Should not override variables already in the environment."""
        monkeypatch.setenv("GCAL_CLIENT_ID", "from-env")
        env_file = tmp_path / ".env"
        env_file.write_text("GCAL_CLIENT_ID=from-file\n")

        assert load_env_file(env_file) == {}


class TestCalendarSettings:
    """Test building settings from the environment."""

    def test_from_env(self, monkeypatch):
        """Should read every GCAL_ variable."""
        monkeypatch.setenv("GCAL_CLIENT_ID", "id")
        monkeypatch.setenv("GCAL_CLIENT_SECRET", "secret")
        monkeypatch.setenv("GCAL_REFRESH_TOKEN", "refresh")
        monkeypatch.setenv("GCAL_CALENDAR_ID", "primary")
        monkeypatch.setenv("GCAL_TIMEOUT", "5")

        settings = CalendarSettings.from_env()

        assert settings.client_id == "id"
        assert settings.redirect_url == OOB_REDIRECT_URL
        assert settings.refresh_token == "refresh"
        assert settings.calendar_id == "primary"
        assert settings.timeout == 5.0

    def test_from_env_file(self, tmp_path, monkeypatch):
        """Should load a .env file first."""
        env_file = tmp_path / ".env"
        env_file.write_text("GCAL_CLIENT_ID=file-id\nGCAL_CLIENT_SECRET=file-secret\n")

        settings = CalendarSettings.from_env(env_file)

        assert settings.client_id == "file-id"
        assert settings.refresh_token is None
        assert settings.timeout == DEFAULT_TIMEOUT

    def test_missing_client_id(self):
        """Should fail when the client id is not configured."""
        with pytest.raises(KeyError):
            CalendarSettings.from_env()
