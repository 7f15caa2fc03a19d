"""Application settings loaded from the environment with pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

VALID_ENVIRONMENTS = ("development", "testing", "production")
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
VALID_LOG_FORMATS = ("structured", "plain")


class Settings(BaseSettings):
    """Meridian configuration.

    Every field can be set through an environment variable of the same
    name (case-insensitive) or a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: str = "development"
    debug: bool = False

    # Position engine
    default_leverage: float = Field(100.0, ge=1)
    realized_pnl_history_limit: int = Field(100, ge=1)
    margin_call_level: float = Field(100.0, gt=0)
    stop_out_level: float = Field(50.0, gt=0)
    snapshot_namespace: str = "novatrade-unified-trading"

    # Ledger of record
    ledger_sync_enabled: bool = True
    database_url: Optional[str] = None
    data_directory: str = "data"
    database_echo_sql: bool = False
    database_pool_pre_ping: bool = True
    database_pool_recycle: int = 3600

    # HTTP API
    endpoint_host: str = "0.0.0.0"
    endpoint_port: int = Field(8000, ge=1, le=65535)
    endpoint_auth_token: Optional[str] = None
    cors_origins: List[str] = ["*"]
    api_reload: bool = False
    api_log_level: str = "INFO"

    # Logging
    log_level: str = "INFO"
    log_format: str = "structured"
    log_file_enabled: bool = False
    log_file_path: str = "data/meridian.log"
    log_max_file_size: str = "10MB"
    log_backup_count: int = 5

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        v = v.lower()
        if v not in VALID_ENVIRONMENTS:
            raise ValueError(f"Environment must be one of: {list(VALID_ENVIRONMENTS)}")
        return v

    @field_validator("log_level", "api_log_level")
    @classmethod
    def validate_log_level(cls, v):
        v = v.upper()
        if v not in VALID_LOG_LEVELS:
            raise ValueError(f"Log level must be one of: {list(VALID_LOG_LEVELS)}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        v = v.lower()
        if v not in VALID_LOG_FORMATS:
            raise ValueError(f"Log format must be one of: {list(VALID_LOG_FORMATS)}")
        return v

    @field_validator("stop_out_level")
    @classmethod
    def validate_stop_out_level(cls, v, info):
        """Stop-out has to sit below the margin call threshold."""
        margin_call_level = info.data.get("margin_call_level")
        if margin_call_level is not None and v >= margin_call_level:
            raise ValueError("Stop-out level must be below the margin call level")
        return v

    def get_database_url(self) -> str:
        """Configured URL, or a SQLite file inside the data directory."""
        if self.database_url:
            return self.database_url

        db_dir = Path(self.data_directory)
        db_dir.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_dir / 'meridian.db'}"

    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache()
def get_settings() -> Settings:
    """Cached application settings."""
    return Settings()
