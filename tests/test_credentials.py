import pytest

from genbatch.credentials import CredentialPool, match_platforms
from genbatch.exceptions import ConfigurationError
from genbatch.models import CredentialEntry
from tests.mocks.credentials import InMemoryCredentialLibrary


def make_library() -> InMemoryCredentialLibrary:
    return InMemoryCredentialLibrary(
        [
            CredentialEntry(name="team-a", secret="key-a", platform="kling"),
            CredentialEntry(name="team-b", secret="key-b", platform="runway"),
            CredentialEntry(name="blank", secret="   ", platform="kling"),
        ]
    )


def test_init_collects_sources_in_order():
    pool = CredentialPool(settings_api_key="settings-key", library=make_library()).init()
    assert [entry.name for entry in pool.entries] == ["env", "settings", "team-a", "team-b"]
    assert [entry.source for entry in pool.entries] == [
        "environment",
        "settings",
        "library",
        "library",
    ]


def test_init_filters_library_by_platform():
    pool = CredentialPool(match_platforms("KLING"), library=make_library()).init()
    assert [entry.name for entry in pool.entries] == ["env", "team-a"]


def test_init_without_credentials_raises(monkeypatch):
    monkeypatch.delenv("GENBATCH_API_KEY")
    with pytest.raises(ConfigurationError):
        CredentialPool(library=InMemoryCredentialLibrary([])).init()


def test_custom_env_var(monkeypatch):
    monkeypatch.setenv("VIDEO_API_KEY", "video-key")
    pool = CredentialPool(env_var="VIDEO_API_KEY").init()
    assert [entry.secret for entry in pool.entries] == ["video-key"]


def test_pick_is_round_robin():
    pool = CredentialPool(settings_api_key="settings-key", library=make_library()).init()
    picked = [pool.pick().name for _ in range(9)]
    assert picked == ["env", "settings", "team-a", "team-b"] * 2 + ["env"]


def test_peek_does_not_advance():
    pool = CredentialPool(settings_api_key="settings-key").init()
    assert pool.peek().name == "env"
    assert pool.peek().name == "env"
    assert pool.pick().name == "env"
    assert pool.peek().name == "settings"


def test_pick_records_library_usage():
    library = make_library()
    pool = CredentialPool(match_platforms("kling"), library=library).init()
    pool.pick()
    entry = pool.pick()
    assert entry.name == "team-a"
    assert entry.last_used is not None
    assert [name for name, _ in library.touched] == ["team-a"]


def test_get_by_name():
    pool = CredentialPool(settings_api_key="settings-key").init()
    assert pool.get("settings").secret == "settings-key"
    assert pool.get("missing") is None
    assert pool.get(None) is None


def test_uninitialized_pool_raises():
    with pytest.raises(ConfigurationError):
        CredentialPool().pick()


def test_secrets_are_not_in_repr():
    pool = CredentialPool(settings_api_key="settings-key").init()
    assert "settings-key" not in repr(pool.entries)
