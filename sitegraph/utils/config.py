"""
Configuration management for the site graph crawler.
"""

import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass, field, fields


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)


@dataclass
class CrawlerConfig:
    """Configuration for a single crawl run."""
    target_url: str = ""
    max_depth: int = 3
    max_workers: int = 20
    delay_ms: int = 1000
    extract_entities: bool = True
    build_relationships: bool = True
    sentiment_analysis: bool = False
    topic_modeling: bool = False
    user_agent: str = DEFAULT_USER_AGENT
    request_timeout: float = 10.0

    @property
    def delay_seconds(self) -> float:
        return self.delay_ms / 1000.0


@dataclass
class DatabaseConfig:
    """Configuration for the record store."""
    type: str = "memory"
    export_ttl: int = 3600


@dataclass
class RedisConfig:
    """Configuration for Redis."""
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    key_prefix: str = "sitegraph"


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"
    file: str = "logs/sitegraph.log"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    json: bool = False


@dataclass
class MonitoringConfig:
    """Configuration for monitoring."""
    prometheus_port: int = 8000
    metrics_enabled: bool = False


@dataclass
class Config:
    """Main configuration class."""
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)


def _build_section(section_cls, data: Optional[Dict[str, Any]]):
    """Build a config section, rejecting keys the section does not define."""
    data = data or {}
    if not isinstance(data, dict):
        raise ValueError(f"Section '{section_cls.__name__}' must be a mapping")
    known = {f.name for f in fields(section_cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(
            f"Unknown keys for {section_cls.__name__}: {', '.join(sorted(unknown))}"
        )
    return section_cls(**data)


def validate_crawler_config(crawler: CrawlerConfig):
    """Validate crawl parameters against their allowed ranges."""
    if not 1 <= crawler.max_depth <= 5:
        raise ValueError("max_depth must be between 1 and 5")

    if not 1 <= crawler.max_workers <= 50:
        raise ValueError("max_workers must be between 1 and 50")

    if not 0 <= crawler.delay_ms <= 10000:
        raise ValueError("delay_ms must be between 0 and 10000")

    if crawler.request_timeout <= 0:
        raise ValueError("request_timeout must be positive")

    if crawler.target_url and not crawler.target_url.startswith(("http://", "https://")):
        raise ValueError("target_url must be an http(s) URL")


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = Path(config_path)
        self._config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        with open(self.config_path, 'r') as file:
            config_data = yaml.safe_load(file) or {}

        if not isinstance(config_data, dict):
            raise ValueError("Top level of the configuration file must be a mapping")

        self._config = Config(
            crawler=_build_section(CrawlerConfig, config_data.get('crawler')),
            database=_build_section(DatabaseConfig, config_data.get('database')),
            redis=_build_section(RedisConfig, config_data.get('redis')),
            logging=_build_section(LoggingConfig, config_data.get('logging')),
            monitoring=_build_section(MonitoringConfig, config_data.get('monitoring'))
        )

        self._validate_config()
        return self._config

    def _validate_config(self):
        """Validate configuration values."""
        if not self._config:
            raise ValueError("Configuration not loaded")

        validate_crawler_config(self._config.crawler)

        # Validate database type
        if self._config.database.type not in ['memory', 'redis']:
            raise ValueError("Database type must be 'memory' or 'redis'")

        logging.getLogger(__name__).debug("Configuration validation passed")

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ValueError("Configuration not loaded. Call load_config() first.")
        return self._config


# Global config manager instance
config_manager = ConfigManager()


def get_config() -> Config:
    """Get the global configuration instance."""
    return config_manager.config


def load_config(config_path: str = "config.yaml") -> Config:
    """Load configuration from file."""
    global config_manager
    config_manager = ConfigManager(config_path)
    return config_manager.load_config()
