"""Environment-driven configuration with Pydantic v2."""

from typing import List, Literal, Optional
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Server Configuration
    host: str = Field(default="127.0.0.1", env="HOST")
    port: int = Field(default=8010, env="PORT", ge=1024, le=65535)
    debug: bool = Field(default=False, env="DEBUG")
    cors_origins: List[str] = Field(default=["http://localhost:3000"], env="CORS_ORIGINS")

    # Database Configuration
    database_url: str = Field(default="sqlite+aiosqlite:///./automation.db", env="DATABASE_URL")
    database_echo: bool = Field(default=False, env="DATABASE_ECHO")
    database_pool_size: int = Field(default=20, env="DATABASE_POOL_SIZE", ge=5, le=100)
    database_max_overflow: int = Field(default=30, env="DATABASE_MAX_OVERFLOW", ge=10, le=100)

    # Logging
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    log_format: Literal["json", "console"] = Field(default="json", env="LOG_FORMAT")
    log_file: Optional[str] = Field(default=None, env="LOG_FILE")

    # Execution Engine
    workspace_concurrency_limit: int = Field(default=5, env="WORKSPACE_CONCURRENCY_LIMIT", ge=1, le=100)
    max_node_visits: int = Field(default=500, env="MAX_NODE_VISITS", ge=1)

    # Scheduled triggers
    schedule_enabled: bool = Field(default=True, env="SCHEDULE_ENABLED")
    schedule_poll_interval: int = Field(default=300, env="SCHEDULE_POLL_INTERVAL", ge=10)
    cron_evaluation: Literal["coarse", "expression"] = Field(default="coarse", env="CRON_EVALUATION")

    # Action handlers
    http_timeout: float = Field(default=30.0, env="HTTP_TIMEOUT", ge=1.0, le=300.0)
    integration_client_ttl: int = Field(default=900, env="INTEGRATION_CLIENT_TTL", ge=1)
    allow_private_urls: bool = Field(default=False, env="ALLOW_PRIVATE_URLS")

    # Temporal (durable delays across restarts)
    temporal_enabled: bool = Field(default=False, env="TEMPORAL_ENABLED")
    temporal_server_address: str = Field(default="localhost:7233", env="TEMPORAL_SERVER_ADDRESS")
    temporal_namespace: str = Field(default="default", env="TEMPORAL_NAMESPACE")
    temporal_task_queue: str = Field(default="automation-runs", env="TEMPORAL_TASK_QUEUE")

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Ensure database directory exists for SQLite."""
        if v and v.startswith("sqlite") and ":///" in v:
            db_path = v.split("///")[1]
            if db_path and db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in levels:
            raise ValueError(f"log_level must be one of {sorted(levels)}")
        return v.upper()

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
    }
