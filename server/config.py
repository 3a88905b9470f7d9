"""
Collector Server - Configuration

Loads configuration from environment variables and the .env file.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # HTTP API
    api_host: str = Field(default="127.0.0.1", alias="API_HOST")
    api_port: int = Field(default=3000, alias="API_PORT")
    api_debug: bool = Field(default=False, alias="API_DEBUG")

    # Agent-facing TCP listener
    collector_host: str = Field(default="127.0.0.1", alias="COLLECTOR_HOST")
    collector_port: int = Field(default=9004, alias="COLLECTOR_PORT")
    max_payload_size: int = Field(default=64 * 1024, alias="MAX_PAYLOAD_SIZE")

    # Database
    database_path: str = Field(default="collector.db", alias="DATABASE_PATH")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


# Global settings instance
settings = Settings()
