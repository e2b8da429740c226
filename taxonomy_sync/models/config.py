"""Configuration models for the taxonomy sync system."""

from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

DEFAULT_NAMESPACE = "taxonomy-sync/v1"
MANAGE_CATALOG_CAPABILITY = "manage_catalog"


class ProviderUser(BaseModel):
    """An API principal allowed to authenticate against the provider."""

    username: str = Field(default=..., min_length=1, description="Login name")
    password_hashes: list[str] = Field(
        default_factory=list,
        description="SHA-256 hex digests of the application passwords issued to this user",
    )
    capabilities: list[str] = Field(
        default_factory=list, description="Capabilities granted to this user"
    )


class ProviderConfig(BaseModel):
    """Configuration for provider mode (the side that serves attribute data)."""

    host: str = Field(default="127.0.0.1", description="Bind address for the HTTP API")
    port: int = Field(default=8000, ge=1, le=65535, description="Bind port for the HTTP API")
    required_capability: str = Field(
        default=MANAGE_CATALOG_CAPABILITY,
        description="Capability a principal needs to read the listings",
    )
    users: list[ProviderUser] = Field(default_factory=list, description="Known API principals")


class ClientConfig(BaseModel):
    """Configuration for client mode (the side that pulls and mirrors data)."""

    api_url: str | None = Field(default=None, description="API root URL of the provider")
    username: str | None = Field(default=None, description="Provider username")
    app_password: str | None = Field(default=None, description="Application password")
    timeout_seconds: float = Field(default=30.0, gt=0, description="Per-request timeout")
    max_retries: int = Field(
        default=0, ge=0, le=5, description="Retries for connection failures (0 = single attempt)"
    )

    @property
    def is_configured(self) -> bool:
        """True when endpoint and both credentials are present."""
        return bool(self.api_url and self.username and self.app_password)


class StorageConfig(BaseModel):
    """Configuration for durable provider-side state."""

    timestamp_db_path: str = Field(
        default="data/modification_timestamps.db",
        description="SQLite file holding modification timestamps",
    )
    catalog_db_path: str = Field(
        default="data/catalog.db",
        description="SQLite file holding the client catalog between sync runs",
    )


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        description="If True, output JSON logs. If False, use console format.",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional path to log file. If None, logs only to stdout.",
    )


class AppConfig(BaseSettings):
    """Main application configuration.

    This class uses pydantic-settings to load configuration from environment
    variables with the APP_ prefix. Environment variables take precedence over
    values passed to the constructor, so an APP_CLIENT__API_URL override wins
    over the same key in a YAML file.
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    role: Literal["provider", "client"] = Field(
        default="provider", description="Whether this instance serves or pulls attribute data"
    )
    namespace: str = Field(default=DEFAULT_NAMESPACE, description="Versioned API path namespace")
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @property
    def is_provider_mode(self) -> bool:
        return self.role == "provider"

    @property
    def is_client_mode(self) -> bool:
        return self.role == "client"
