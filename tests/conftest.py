import pytest

from batchtrack.config import AppConfig
from batchtrack.infra.sql_storage import SQLStorage
from batchtrack.models import Model, Prompt


@pytest.fixture(autouse=True)
def _use_test_env(monkeypatch):
    """Force every test to read .env.test instead of .env."""
    monkeypatch.setattr(
        AppConfig, "model_config", {**AppConfig.model_config, "env_file": ".env.test"}
    )


@pytest.fixture
def storage():
    """In-memory SQLite storage with the schema created."""
    s = SQLStorage("sqlite://")
    s.init_schema()
    yield s
    s.close()


@pytest.fixture
def prompt() -> Prompt:
    return Prompt(name="assistant", text="You are helpful.")


@pytest.fixture
def model() -> Model:
    return Model(name="test-model", params={"max_tokens": 256})


class Recorder:
    """Collects on_value / on_error callback invocations."""

    def __init__(self) -> None:
        self.values: list[tuple[str, str]] = []
        self.errors: list[tuple[str, str]] = []

    def on_value(self, custom_id: str, text: str) -> None:
        self.values.append((custom_id, text))

    def on_error(self, custom_id: str, kind: str) -> None:
        self.errors.append((custom_id, kind))


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()
