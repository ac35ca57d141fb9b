"""
Crawler core components.
"""

from .url_frontier import FrontierQueue, CrawlTarget
from .fetcher import WebFetcher, FetchResult
from .parser import ContentParser, ParsedContent, PageRecord, ParseError
from .orchestrator import (
    CrawlOrchestrator, CrawlState, CrawlStats, CrawlRunError,
    ProgressSnapshot, ProgressStatus
)

__all__ = [
    'FrontierQueue', 'CrawlTarget',
    'WebFetcher', 'FetchResult',
    'ContentParser', 'ParsedContent', 'PageRecord', 'ParseError',
    'CrawlOrchestrator', 'CrawlState', 'CrawlStats', 'CrawlRunError',
    'ProgressSnapshot', 'ProgressStatus'
]
