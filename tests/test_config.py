"""
Tests for settings loading.
"""

from openmessages.config import Settings, get_settings


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        settings = Settings(_env_file=None)

        assert settings.DATABASE_URL == "sqlite:///openmessages.db"
        assert settings.BACKFILL_MESSAGE_LIMIT == 20
        assert settings.BACKFILL_FOLDER == "inbox"

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite:////tmp/other.db")
        monkeypatch.setenv("BACKFILL_MESSAGE_LIMIT", "50")
        settings = Settings(_env_file=None)

        assert settings.DATABASE_URL == "sqlite:////tmp/other.db"
        assert settings.BACKFILL_MESSAGE_LIMIT == 50

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
