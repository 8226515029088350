"""
Configuration management for the crawler.
"""

import yaml
import logging
from pathlib import Path
from typing import List, Any, Dict, Optional
from dataclasses import dataclass, field


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (compatible; politecrawl/1.0; "
    "+https://github.com/politecrawl/politecrawl)"
)
DEFAULT_INTERVAL = 1000
DEFAULT_CONCURRENT_REQUESTS_LIMIT = 5
DEFAULT_ROBOTS_CACHE_TIME = 3600
DEFAULT_REQUEST_TIMEOUT = 30

TIE_BREAKERS = ('allow', 'disallow')
URL_LIST_TYPES = ('memory', 'redis')


class ConfigurationError(ValueError):
    """Raised for invalid crawler options or configuration files."""
    pass


def validate_crawler_options(interval: float, concurrent_requests_limit: int,
                             robots_cache_time: float, robots_tie_breaker: str = 'allow'):
    """Validate the options shared by the YAML config and the Crawler constructor."""
    if interval < 0:
        raise ConfigurationError("interval must be non-negative")

    if concurrent_requests_limit < 1:
        raise ConfigurationError("concurrent_requests_limit must be at least 1")

    if robots_cache_time < 0:
        raise ConfigurationError("robots_cache_time must be non-negative")

    if robots_tie_breaker not in TIE_BREAKERS:
        raise ConfigurationError(
            f"robots_tie_breaker must be one of {', '.join(TIE_BREAKERS)}"
        )


@dataclass
class CrawlerConfig:
    """Configuration for crawler behavior."""
    seed_urls: List[str] = field(default_factory=list)
    interval: float = DEFAULT_INTERVAL
    concurrent_requests_limit: int = DEFAULT_CONCURRENT_REQUESTS_LIMIT
    user_agent: str = DEFAULT_USER_AGENT
    robots_cache_time: float = DEFAULT_ROBOTS_CACHE_TIME
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    robots_tie_breaker: str = 'allow'
    follow_links: bool = True
    allowed_domains: List[str] = field(default_factory=list)


@dataclass
class UrlListConfig:
    """Which URL source/sink backs the crawl."""
    type: str = 'memory'


@dataclass
class RedisConfig:
    """Configuration for Redis."""
    host: str = 'localhost'
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    key_prefix: str = 'politecrawl'


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = 'INFO'
    file: str = 'logs/crawler.log'
    format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    json: bool = False


@dataclass
class Config:
    """Main configuration class."""
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    url_list: UrlListConfig = field(default_factory=UrlListConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


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
            raise ConfigurationError(f"Configuration root must be a mapping: {self.config_path}")

        self._config = self.from_dict(config_data)
        self._validate_config()
        return self._config

    @staticmethod
    def from_dict(config_data: Dict[str, Any]) -> Config:
        """Build a Config from parsed YAML, leaving absent sections at their defaults."""
        try:
            return Config(
                crawler=CrawlerConfig(**(config_data.get('crawler') or {})),
                url_list=UrlListConfig(**(config_data.get('url_list') or {})),
                redis=RedisConfig(**(config_data.get('redis') or {})),
                logging=LoggingConfig(**(config_data.get('logging') or {})),
            )
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def _validate_config(self):
        """Validate configuration values."""
        if not self._config:
            raise ConfigurationError("Configuration not loaded")

        crawler = self._config.crawler
        validate_crawler_options(
            crawler.interval,
            crawler.concurrent_requests_limit,
            crawler.robots_cache_time,
            crawler.robots_tie_breaker,
        )

        if crawler.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be positive")

        if self._config.url_list.type not in URL_LIST_TYPES:
            raise ConfigurationError("url_list type must be 'memory' or 'redis'")

        logging.getLogger(__name__).info("Configuration validation passed")

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ConfigurationError("Configuration not loaded. Call load_config() first.")
        return self._config


def load_config(config_path: str = "config.yaml") -> Config:
    """Load configuration from file."""
    return ConfigManager(config_path).load_config()
