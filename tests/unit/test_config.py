from pathlib import Path

from batchtrack.config import AppConfig


class TestAppConfig:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.delenv("POLL_LIMIT", raising=False)
        config = AppConfig()
        assert config.database_url == "sqlite:///data/batchtrack.db"
        assert config.poll_limit == 10
        assert config.sqlite_path == Path("data/batchtrack.db")

    def test_loads_from_env(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://db/batches")
        monkeypatch.setenv("POLL_LIMIT", "25")
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
        config = AppConfig()
        assert config.database_url == "postgresql://db/batches"
        assert config.poll_limit == 25
        assert config.anthropic_api_key == "sk-test"
        assert config.sqlite_path is None

    def test_google_api_key_alias(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.setenv("GOOGLE_API_KEY", "g-key")
        assert AppConfig().gemini_api_key == "g-key"

    def test_in_memory_sqlite_has_no_path(self):
        assert AppConfig(database_url="sqlite://").sqlite_path is None
        assert AppConfig(database_url="sqlite:///:memory:").sqlite_path is None
