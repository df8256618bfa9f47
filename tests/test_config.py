import pytest
from tunegen.config import Config, load_config


@pytest.fixture(autouse=True)
def clear_env(monkeypatch):
    for name in (
        "PORT",
        "HOST",
        "KIE_BASE_URL",
        "MAX_REQUESTS_PER_WINDOW",
        "RESET_WINDOW_SECONDS",
        "POLL_GRACE_SECONDS",
        "POLL_INTERVAL_SECONDS",
        "POLL_TIMEOUT_SECONDS",
        "REQUEST_TIMEOUT_SECONDS",
        "DEFAULT_MODEL",
        "CALLBACK_URL",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


def test_config_loads_valid_env(monkeypatch):
    monkeypatch.setenv("KIE_API_KEYS", "key1,key2")

    config = load_config(use_dotenv=False)

    assert config.api_keys == ["key1", "key2"]
    assert config.port == 8000
    assert config.host == "0.0.0.0"
    assert config.kie_base_url == "https://api.kie.ai/api/v1"
    assert config.max_requests_per_window == 20
    assert config.reset_window_seconds == 3600
    assert config.poll_grace_seconds == 5
    assert config.poll_interval_seconds == 10
    assert config.poll_timeout_seconds == 600
    assert config.default_model == "V3_5"
    assert config.callback_url == "https://your-app.com/callback"
    assert config.log_level == "INFO"


def test_config_missing_api_keys(monkeypatch):
    monkeypatch.delenv("KIE_API_KEYS", raising=False)

    with pytest.raises(
        ValueError,
        match="KIE_API_KEYS environment variable must be set and non-empty",
    ):
        load_config(use_dotenv=False)


def test_config_empty_api_keys(monkeypatch):
    monkeypatch.setenv("KIE_API_KEYS", " , ")

    with pytest.raises(ValueError, match="KIE_API_KEYS"):
        load_config(use_dotenv=False)


def test_config_custom_values(monkeypatch):
    monkeypatch.setenv("KIE_API_KEYS", "custom_key")
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("HOST", "127.0.0.1")
    monkeypatch.setenv("KIE_BASE_URL", "https://custom.api.com/v1")
    monkeypatch.setenv("MAX_REQUESTS_PER_WINDOW", "5")
    monkeypatch.setenv("RESET_WINDOW_SECONDS", "60")
    monkeypatch.setenv("POLL_GRACE_SECONDS", "1")
    monkeypatch.setenv("POLL_INTERVAL_SECONDS", "2.5")
    monkeypatch.setenv("POLL_TIMEOUT_SECONDS", "120")
    monkeypatch.setenv("DEFAULT_MODEL", "V4")
    monkeypatch.setenv("CALLBACK_URL", "https://hooks.example/kie")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")

    config = load_config(use_dotenv=False)

    assert config.api_keys == ["custom_key"]
    assert config.port == 9000
    assert config.host == "127.0.0.1"
    assert config.kie_base_url == "https://custom.api.com/v1"
    assert config.max_requests_per_window == 5
    assert config.reset_window_seconds == 60
    assert config.poll_grace_seconds == 1
    assert config.poll_interval_seconds == 2.5
    assert config.poll_timeout_seconds == 120
    assert config.default_model == "V4"
    assert config.callback_url == "https://hooks.example/kie"
    assert config.log_level == "DEBUG"


def test_config_strips_whitespace(monkeypatch):
    monkeypatch.setenv("KIE_API_KEYS", " key1 , key2 ,")

    config = load_config(use_dotenv=False)

    assert config.api_keys == ["key1", "key2"]


def test_config_rejects_non_positive_limits():
    with pytest.raises(ValueError):
        Config(api_keys=["k1"], max_requests_per_window=0)

    with pytest.raises(ValueError):
        Config(api_keys=["k1"], poll_interval_seconds=0)
