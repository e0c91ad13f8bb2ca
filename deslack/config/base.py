"""Base configuration for deslack peers."""

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TransportConfig(BaseModel):
    """Point-to-point transport configuration."""
    listen_host: str = Field(default="0.0.0.0")
    listen_port: int = Field(default=8337)
    connect_timeout: float = Field(default=5.0)  # seconds
    rpc_timeout: float = Field(default=10.0)  # seconds
    max_message_size: int = Field(default=1024 * 1024)  # 1MB max frame


class ServerConfig(BaseModel):
    """Server role configuration."""
    evict_on_leave: bool = Field(default=False)  # presence is sticky unless enabled
    password_iterations: int = Field(default=600_000)
    api_host: str = Field(default="127.0.0.1")
    api_port: int = Field(default=8335)


class DeslackSettings(BaseSettings):
    """Settings for a deslack peer, read from DESLACK_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DESLACK_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    log_level: str = "INFO"
    json_logs: bool = True

    transport: TransportConfig = Field(default_factory=TransportConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
