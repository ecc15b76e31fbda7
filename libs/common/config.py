# Copyright (c) 2024 Video Catalog Platform
# Licensed under the MIT License

"""Configuration management using Pydantic settings.

Each concern reads its own environment prefix, e.g. SEARCH_CACHE_TTL_SECONDS
or ELASTICSEARCH_URL. Values may also come from a local .env file.
"""

from typing import List, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file
load_dotenv()

ENVIRONMENTS = ("development", "staging", "production")


def _env_config(prefix: str = "") -> SettingsConfigDict:
    return SettingsConfigDict(
        env_prefix=prefix,
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class DatabaseSettings(BaseSettings):
    """Canonical video store: postgresql+asyncpg:// in production, sqlite+aiosqlite:// locally"""

    model_config = _env_config("DATABASE_")

    url: str = "sqlite+aiosqlite:///./video_catalog.db"
    echo: bool = False


class RedisSettings(BaseSettings):
    """Search result cache"""

    model_config = _env_config("REDIS_")

    url: str = "redis://localhost:6379/0"
    max_connections: int = 20
    socket_timeout: int = 5
    socket_connect_timeout: int = 5


class ElasticsearchSettings(BaseSettings):
    """Search index cluster"""

    model_config = _env_config("ELASTICSEARCH_")

    url: str = "http://localhost:9200"
    username: Optional[str] = None
    password: Optional[str] = None
    ca_cert_path: Optional[str] = None
    verify_certs: bool = True
    timeout: int = 10
    # Searches fall back to the database instead of retrying
    max_retries: int = 0


class SearchSettings(BaseSettings):
    """Search behaviour"""

    model_config = _env_config("SEARCH_")

    index_name: str = "videos"
    es_shards: int = 1
    es_replicas: int = 0

    # Pagination
    default_page_size: int = 12
    max_page_size: int = 100

    # Caching; views shown in cached results may lag by up to the TTL
    cache_ttl_seconds: int = 120
    cache_results: bool = True

    # Highlighting
    highlight_pre_tag: str = "<mark>"
    highlight_post_tag: str = "</mark>"

    # Suggestions and related videos
    popular_limit: int = 5
    suggestion_tag_limit: int = 10
    related_limit: int = 6
    popular_tag_limit: int = 30


class MonitoringSettings(BaseSettings):
    """Logging configuration"""

    model_config = _env_config("MONITORING_")

    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s: %(message)s"


class Settings(BaseSettings):
    """Main application settings"""

    model_config = _env_config()

    environment: str = "development"

    # Application
    app_name: str = "Video Catalog API"
    app_version: str = "1.0.0"
    api_prefix: str = "/v1"
    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Server
    host: str = "0.0.0.0"
    port: int = 4000

    # Component settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    elasticsearch: ElasticsearchSettings = Field(default_factory=ElasticsearchSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        if v not in ENVIRONMENTS:
            raise ValueError(f"Environment must be one of: {', '.join(ENVIRONMENTS)}")
        return v

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


# Global settings instance (lazy loaded)
_settings = None


def get_settings() -> Settings:
    """Get application settings"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
