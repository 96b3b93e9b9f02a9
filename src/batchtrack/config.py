from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    """Application settings, loaded from ``.env`` or environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    database_url: str = "sqlite:///data/batchtrack.db"

    # Provider credentials
    anthropic_api_key: str = ""
    gemini_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("gemini_api_key", "google_api_key"),
    )

    # Model configuration used by the CLI
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    anthropic_max_tokens: int = 4096
    gemini_model: str = "gemini-2.5-flash"

    # Prompt used by the CLI
    prompt_name: str = "default"
    prompt_text: str = "You are a helpful assistant."
    prompt_cache: bool = False

    # Polling fan-out per invocation
    poll_limit: int = 10

    log_dir: Path = Path(".log")

    @property
    def sqlite_path(self) -> Path | None:
        """Filesystem path of a file-backed SQLite database, else None."""
        prefix = "sqlite:///"
        if not self.database_url.startswith(prefix):
            return None
        path = self.database_url[len(prefix) :]
        if not path or path == ":memory:":
            return None
        return Path(path)
