"""
Configuration for the Mounasabet search service.

Each concern gets its own settings group with a dedicated environment
variable prefix (e.g. ``MOUNASABET_CACHE_REDIS_URL``). The root ``Settings``
object composes them; components receive only the group they need.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BASE_DIR = Path.home() / ".local" / "share" / "mounasabet-search"


class PathSettings(BaseSettings):
    """Filesystem locations for the local stores."""

    model_config = SettingsConfigDict(env_prefix="MOUNASABET_", extra="ignore")

    base_dir: Path = Field(default=DEFAULT_BASE_DIR, description="Root directory for local databases")


class LoggingSettings(BaseSettings):
    """Logging configuration for entry points."""

    model_config = SettingsConfigDict(env_prefix="MOUNASABET_LOG_", extra="ignore")

    level: str = Field(default="INFO", description="Root log level")
    format: str = Field(default="%(asctime)s %(levelname)s %(name)s %(message)s")


class HTTPSettings(BaseSettings):
    """HTTP server configuration."""

    model_config = SettingsConfigDict(env_prefix="MOUNASABET_HTTP_", extra="ignore")

    host: str = "127.0.0.1"
    port: int = Field(default=8000, ge=1, le=65535)


class CacheSettings(BaseSettings):
    """Redis result cache configuration."""

    model_config = SettingsConfigDict(env_prefix="MOUNASABET_CACHE_", extra="ignore")

    enabled: bool = True
    redis_url: str = "redis://localhost:6379"
    key_prefix: str = "mounasabet:cache:"
    max_connections: int = Field(default=10, ge=1)

    # Entry lifetimes, chosen by content volatility
    default_ttl_seconds: int = Field(default=300, ge=1, description="Regular keyword searches")
    volatile_ttl_seconds: int = Field(default=60, ge=1, description="Price-filtered or volatile-category searches")
    static_ttl_seconds: int = Field(default=3600, ge=1, description="Plain catalog browsing")
    volatile_categories: list[str] = Field(default_factory=lambda: ["catering", "decoration"])


class CatalogSettings(BaseSettings):
    """Catalog store configuration."""

    model_config = SettingsConfigDict(env_prefix="MOUNASABET_CATALOG_", extra="ignore")

    db_path: Path | None = Field(default=None, description="SQLite catalog path (defaults under base_dir)")


class AnalyticsSettings(BaseSettings):
    """Search analytics recording and aggregation configuration."""

    model_config = SettingsConfigDict(env_prefix="MOUNASABET_ANALYTICS_", extra="ignore")

    db_path: Path | None = Field(default=None, description="SQLite analytics path (defaults under base_dir)")
    popular_queries_limit: int = Field(default=20, ge=1)
    trending_categories_limit: int = Field(default=10, ge=1)
    top_list_limit: int = Field(default=10, ge=1, description="Size of empty-query, slow-query and user lists")
    slow_query_threshold_ms: float = Field(default=1000.0, gt=0)
    dispatcher_queue_size: int = Field(default=1000, ge=1)
    dispatcher_drain_timeout: float = Field(default=5.0, ge=0)
    retention_days: int = Field(default=180, ge=1)


class SearchSettings(BaseSettings):
    """Search request and optimizer configuration."""

    model_config = SettingsConfigDict(env_prefix="MOUNASABET_SEARCH_", extra="ignore")

    default_limit: int = Field(default=12, ge=1)
    max_limit: int = Field(default=1000, ge=1)
    popular_window_days: int = Field(default=7, ge=1)
    suggestion_window_days: int = Field(default=30, ge=1)
    max_suggestions: int = Field(default=5, ge=1)
    preload_window_days: int = Field(default=7, ge=1)
    preload_top_n: int = Field(default=5, ge=0)


class Settings(BaseSettings):
    """Root settings object composing every group."""

    model_config = SettingsConfigDict(extra="ignore")

    paths: PathSettings = Field(default_factory=PathSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    http: HTTPSettings = Field(default_factory=HTTPSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)

    @property
    def catalog_db_path(self) -> Path:
        return self.catalog.db_path or self.paths.base_dir / "catalog" / "catalog.db"

    @property
    def analytics_db_path(self) -> Path:
        return self.analytics.db_path or self.paths.base_dir / "analytics" / "search_analytics.db"


settings = Settings()
