import pytest

from genbatch.config import ENV_PREFIX, EngineSettings
from genbatch.db.session import reset_engine


@pytest.fixture(autouse=True)
def test_set_env(monkeypatch, tmp_path):
    for field_name in EngineSettings.model_fields:
        monkeypatch.delenv(f"{ENV_PREFIX}{field_name.upper()}", raising=False)
    monkeypatch.setenv("GENBATCH_API_KEY", "test-key")
    monkeypatch.setenv("GENBATCH_DB_PATH", (tmp_path / "genbatch.db").as_posix())
    reset_engine()
    yield
    reset_engine()


@pytest.fixture
def settings(tmp_path) -> EngineSettings:
    """
    Engine settings with delays short enough for tests.
    """
    return EngineSettings(
        concurrency=2,
        max_attempts=3,
        backoff_base_seconds=0.001,
        backoff_max_seconds=0.01,
        rate_limit_cooldown_seconds=0.05,
        poll_interval_seconds=0.01,
        poll_timeout_seconds=5.0,
        storage_dir=tmp_path / "artifacts",
    )
