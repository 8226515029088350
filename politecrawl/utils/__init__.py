"""
Utility modules for the crawler.
"""

from .config import (
    Config, ConfigManager, ConfigurationError, CrawlerConfig,
    DEFAULT_USER_AGENT, load_config
)
from .logger import setup_logging, get_crawler_logger

__all__ = [
    'Config', 'ConfigManager', 'ConfigurationError', 'CrawlerConfig',
    'DEFAULT_USER_AGENT', 'load_config', 'setup_logging', 'get_crawler_logger'
]
