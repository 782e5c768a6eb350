"""Configuration management for Clippy."""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Paths
DEFAULT_CONFIG_PATH = Path("~/.clippy/config.yaml").expanduser()
DEFAULT_DB_PATH = Path("~/.clippy/conversations.db").expanduser()
LOCAL_CONFIG_FILENAME = "config.yaml"


class ModelConfig(BaseModel):
    """Model gateway configuration."""

    provider: str = "openai"
    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 1024
    api_key: str = ""
    base_url: str = ""
    timeout: float = 60.0


class AssistantConfig(BaseModel):
    """Reply loop configuration."""

    max_round_trips: int = Field(default=5, ge=1)


class WeatherToolConfig(BaseModel):
    """Weather tool configuration."""

    api_key: str = ""
    base_url: str = "https://api.weatherapi.com/v1"
    forecast_days: int = 3


class StockToolConfig(BaseModel):
    """Stock quote tool configuration."""

    api_key: str = ""
    base_url: str = "https://finnhub.io/api/v1"


class HolidaysToolConfig(BaseModel):
    """Holiday calendar tool configuration."""

    calendar_url: str = "https://www.officeholidays.com/ics/spain/catalonia"


class ToolsConfig(BaseModel):
    """Tools configuration."""

    enabled: list[str] = [
        "get_today_date",
        "get_weather",
        "get_stock_quote",
        "get_holidays",
    ]
    timeout_seconds: float = Field(default=5.0, gt=0)
    weather: WeatherToolConfig = Field(default_factory=WeatherToolConfig)
    stock: StockToolConfig = Field(default_factory=StockToolConfig)
    holidays: HolidaysToolConfig = Field(default_factory=HolidaysToolConfig)


class StorageConfig(BaseModel):
    """Conversation storage configuration."""

    backend: Literal["sqlite", "memory"] = "sqlite"
    path: str = str(DEFAULT_DB_PATH)


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8080


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "console"


class Config(BaseSettings):
    """Main configuration for Clippy."""

    model: ModelConfig = Field(default_factory=ModelConfig)
    assistant: AssistantConfig = Field(default_factory=AssistantConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="CLIPPY_",
        env_file=".env",
        env_nested_delimiter="__",
    )

    @classmethod
    def resolve_default_config_path(cls) -> Path:
        """Resolve default config path with local-first precedence."""
        local_path = Path.cwd() / LOCAL_CONFIG_FILENAME
        if local_path.exists():
            return local_path
        return DEFAULT_CONFIG_PATH

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML file."""
        config_path = Path(path).expanduser() if path else cls.resolve_default_config_path()

        if not config_path.exists():
            return cls()

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def load(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML; env vars fill sections the file leaves out."""
        return cls.from_yaml(path)


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
