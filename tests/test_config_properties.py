"""Property-based tests for configuration models and the YAML loader."""

import tempfile
from pathlib import Path

import pytest
import structlog
from hypothesis import given
from hypothesis import strategies as st
from pydantic import ValidationError

from taxonomy_sync.errors import ConfigurationError
from taxonomy_sync.models import AppConfig, ClientConfig, ProviderConfig
from taxonomy_sync.utils.config_loader import ConfigLoader

log = structlog.stdlib.get_logger()

CLIENT_YAML = """
role: client
client:
  api_url: ${PROVIDER_API_URL}
  username: ${PROVIDER_USERNAME}
  app_password: ${PROVIDER_APP_PASSWORD}
  timeout_seconds: 12.5
logging:
  log_level: DEBUG
  json_logs: false
"""


@given(st.integers(min_value=1, max_value=65535))
def test_provider_port_bounds(port: int):
    assert ProviderConfig(port=port).port == port


@given(st.integers().filter(lambda x: x < 1 or x > 65535))
def test_provider_port_out_of_bounds_rejected(port: int):
    with pytest.raises(ValidationError):
        ProviderConfig(port=port)


@given(
    api_url=st.one_of(st.none(), st.just(""), st.just("https://shop.example")),
    username=st.one_of(st.none(), st.just(""), st.just("sync-bot")),
    app_password=st.one_of(st.none(), st.just(""), st.just("abcd efgh")),
)
def test_client_is_configured_requires_all_three(api_url, username, app_password):
    config = ClientConfig(api_url=api_url, username=username, app_password=app_password)

    assert config.is_configured == bool(api_url and username and app_password)


def test_defaults():
    config = AppConfig()

    assert config.role == "provider"
    assert config.namespace == "taxonomy-sync/v1"
    assert config.client.timeout_seconds == 30.0
    assert config.client.max_retries == 0
    assert config.provider.required_capability == "manage_catalog"


def test_environment_variable_loading(monkeypatch):
    """Nested settings are read from APP_<SECTION>__<FIELD> variables."""
    monkeypatch.setenv("APP_ROLE", "client")
    monkeypatch.setenv("APP_CLIENT__API_URL", "https://provider.example")
    monkeypatch.setenv("APP_CLIENT__USERNAME", "sync-bot")
    monkeypatch.setenv("APP_CLIENT__APP_PASSWORD", "secret")
    monkeypatch.setenv("APP_STORAGE__TIMESTAMP_DB_PATH", "/tmp/stamps.db")

    config = AppConfig()

    assert config.is_client_mode
    assert config.client.api_url == "https://provider.example"
    assert config.client.is_configured
    assert config.storage.timestamp_db_path == "/tmp/stamps.db"


def test_configuration_file_parsing(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("PROVIDER_API_URL", "https://provider.example/api")
    monkeypatch.setenv("PROVIDER_USERNAME", "sync-bot")
    monkeypatch.setenv("PROVIDER_APP_PASSWORD", "abcd efgh ijkl")
    config_path = tmp_path / "client.yaml"
    config_path.write_text(CLIENT_YAML)

    config = ConfigLoader().load_config(str(config_path))

    assert config.is_client_mode
    assert config.client.api_url == "https://provider.example/api"
    assert config.client.app_password == "abcd efgh ijkl"
    assert config.client.timeout_seconds == 12.5
    assert config.logging.log_level == "DEBUG"
    assert config.logging.json_logs is False


def test_environment_overrides_yaml_values(monkeypatch):
    """APP_<SECTION>__<FIELD> wins over keys that the YAML file sets explicitly."""
    monkeypatch.setenv("APP_CLIENT__API_URL", "http://provider.example")
    monkeypatch.setenv("APP_CLIENT__USERNAME", "sync-bot")
    monkeypatch.setenv("APP_CLIENT__APP_PASSWORD", "abcd efgh")
    monkeypatch.setenv("APP_LOGGING__LOG_LEVEL", "WARNING")

    config = ConfigLoader().load_config(str(Path(__file__).parent.parent / "config" / "default.yaml"))

    assert config.client.api_url == "http://provider.example"
    assert config.client.is_configured
    assert config.logging.log_level == "WARNING"
    assert config.logging.json_logs is True
    assert config.client.timeout_seconds == 30
    assert config.storage.catalog_db_path == "data/catalog.db"


@given(timeout=st.floats(min_value=0.5, max_value=300, allow_nan=False))
def test_environment_override_is_merged_per_field(timeout: float):
    with tempfile.TemporaryDirectory() as tmp_dir:
        config_path = Path(tmp_dir) / "client.yaml"
        config_path.write_text("role: client\nclient:\n  api_url: https://yaml.example\n  timeout_seconds: 12.5\n")
        with pytest.MonkeyPatch.context() as mp:
            mp.setenv("APP_CLIENT__TIMEOUT_SECONDS", repr(timeout))
            config = ConfigLoader().load_config(str(config_path))

    assert config.client.timeout_seconds == timeout
    assert config.client.api_url == "https://yaml.example"


def test_missing_environment_variable_is_named(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("PROVIDER_API_URL", raising=False)
    config_path = tmp_path / "client.yaml"
    config_path.write_text(CLIENT_YAML)

    with pytest.raises(ConfigurationError) as exc_info:
        ConfigLoader().load_config(str(config_path))

    assert "PROVIDER_API_URL" in str(exc_info.value)


@pytest.mark.parametrize(
    "content, fragment",
    [
        ("", "empty"),
        ("- just\n- a list\n", "mapping"),
        ("role: [unclosed\n", "parse"),
        ("role: mirror\n", "validation"),
        ("client:\n  timeout_seconds: -1\n", "validation"),
    ],
)
def test_invalid_files_raise_configuration_error(tmp_path: Path, content: str, fragment: str):
    config_path = tmp_path / "bad.yaml"
    config_path.write_text(content)

    with pytest.raises(ConfigurationError) as exc_info:
        ConfigLoader().load_config(str(config_path))

    assert fragment in str(exc_info.value).lower()


def test_missing_file(tmp_path: Path):
    with pytest.raises(ConfigurationError):
        ConfigLoader().load_config(str(tmp_path / "nope.yaml"))


def test_app_env_selects_file(tmp_path: Path, monkeypatch):
    (tmp_path / "default.yaml").write_text("role: provider\n")
    (tmp_path / "staging.yaml").write_text("role: client\n")
    loader = ConfigLoader(config_dir=tmp_path)

    monkeypatch.setenv("APP_ENV", "staging")
    assert loader.load_config().role == "client"

    monkeypatch.setenv("APP_ENV", "unknown")
    assert loader.load_config().role == "provider"


def test_repository_default_config_loads():
    config = ConfigLoader().load_config(str(Path(__file__).parent.parent / "config" / "default.yaml"))

    assert config.is_provider_mode
    assert config.client.is_configured is False


class TestValidateConfig:
    def test_client_without_credentials_warns(self):
        warnings = ConfigLoader().validate_config(AppConfig(role="client"))

        assert any("client.api_url" in w for w in warnings)

    def test_provider_user_checks(self):
        config = AppConfig(
            provider={"users": [{"username": "viewer", "capabilities": ["read"]}]},
        )

        warnings = ConfigLoader().validate_config(config)

        assert any("viewer" in w and "manage_catalog" in w for w in warnings)

    def test_provider_without_users_warns(self):
        warnings = ConfigLoader().validate_config(AppConfig())

        assert warnings == ["provider role selected but no provider.users are configured"]

    def test_non_http_api_url_warns(self):
        config = AppConfig(
            role="client",
            client={"api_url": "ftp://shop.example", "username": "u", "app_password": "p"},
        )

        warnings = ConfigLoader().validate_config(config)

        assert warnings == ["client.api_url 'ftp://shop.example' is not an http(s) URL"]
