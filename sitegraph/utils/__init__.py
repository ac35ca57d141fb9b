"""
Configuration, logging and metrics for the crawler.
"""

from .config import Config, ConfigManager, CrawlerConfig, load_config, get_config
from .logger import setup_logging, get_crawler_logger
from .monitoring import MetricsCollector, CrawlerMonitor

__all__ = [
    'Config', 'ConfigManager', 'CrawlerConfig', 'load_config', 'get_config',
    'setup_logging', 'get_crawler_logger', 'MetricsCollector', 'CrawlerMonitor'
]
