"""
Crawl orchestrator: drives batches of concurrent fetches through the frontier
and streams parsed pages to the caller as they complete.
"""

import asyncio
import logging
import time
import uuid
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, List, Optional

from .fetcher import WebFetcher
from .parser import ContentParser, PageRecord, get_domain, normalize_url
from .url_frontier import CrawlTarget, FrontierQueue
from ..utils.config import CrawlerConfig, validate_crawler_config
from ..utils.logger import get_crawler_logger
from ..utils.monitoring import CrawlerMonitor


# Categories found on the root page are one link hop away from it.
SEED_DEPTH = 1


class CrawlState(Enum):
    """Lifecycle of one crawl run."""
    PENDING = "pending"
    SEEDING = "seeding"
    RUNNING = "running"
    DRAINING = "draining"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (CrawlState.COMPLETED, CrawlState.FAILED, CrawlState.CANCELLED)


class ProgressStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class ProgressSnapshot:
    """Emitted once per settled fetch."""
    url: str
    status: ProgressStatus
    total_processed: int
    message: str

    def to_dict(self) -> dict:
        return {
            'url': self.url,
            'status': self.status.value,
            'totalProcessed': self.total_processed,
            'message': self.message,
        }


ProgressCallback = Callable[[ProgressSnapshot], Awaitable[None]]


class CrawlRunError(Exception):
    """Raised when the run itself breaks, as opposed to a single URL failing."""
    pass


@dataclass
class CrawlStats:
    """Counters for one crawl run."""
    start_time: float = field(default_factory=time.time)
    processed: int = 0
    successful: int = 0
    failed: int = 0
    discovered: int = 0
    in_flight: int = 0
    peak_in_flight: int = 0

    @property
    def elapsed_time(self) -> float:
        return time.time() - self.start_time

    @property
    def pages_per_minute(self) -> float:
        elapsed_minutes = self.elapsed_time / 60
        return self.successful / elapsed_minutes if elapsed_minutes > 0 else 0


@dataclass
class _Outcome:
    target: CrawlTarget
    page: Optional[PageRecord]
    error: Optional[str]
    duration: float


class CrawlOrchestrator:
    """
    Breadth-first crawl of one site in batches of at most max_workers fetches.

    The frontier and all counters are only touched by the orchestrator between
    suspension points; fetch tasks just return their outcome. Links found in a
    batch become available to the next batch. Pages are yielded in the order
    their fetches settle.
    """

    def __init__(self, config: CrawlerConfig,
                 fetcher: Optional[WebFetcher] = None,
                 parser: Optional[ContentParser] = None,
                 on_progress: Optional[ProgressCallback] = None,
                 monitor: Optional[CrawlerMonitor] = None):
        validate_crawler_config(config)
        if not config.target_url:
            raise ValueError("target_url is required")

        self.config = config
        self.fetcher = fetcher or WebFetcher(
            user_agent=config.user_agent,
            request_timeout=config.request_timeout,
            max_concurrent_requests=config.max_workers
        )
        self.parser = parser or ContentParser()
        self.on_progress = on_progress
        self.monitor = monitor

        self.root_url = normalize_url(config.target_url)
        self.domain = get_domain(self.root_url)
        self.frontier = FrontierQueue(config.max_depth)
        self.stats = CrawlStats()
        self.state = CrawlState.PENDING
        self.run_id = uuid.uuid4().hex[:12]

        self.logger = get_crawler_logger(__name__, run_id=self.run_id)
        self._cancel_event = asyncio.Event()
        self._started = False

    def cancel(self):
        """Ask the run to stop before its next batch."""
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    async def crawl(self) -> AsyncIterator[PageRecord]:
        """
        Run the crawl and yield each successfully parsed page.

        Can only be iterated once. Per-URL failures are reported through the
        progress callback and never raised; anything else ends the run in the
        FAILED state and surfaces as CrawlRunError.
        """
        if self._started:
            raise RuntimeError("A crawl run cannot be restarted; create a new orchestrator")
        self._started = True

        owns_session = self.fetcher.session is None
        self.stats = CrawlStats()

        try:
            if owns_session:
                await self.fetcher.start()

            self.state = CrawlState.SEEDING
            await self._seed()

            self.state = CrawlState.RUNNING
            self.logger.info(f"Crawling {self.root_url} with {len(self.frontier)} seed targets "
                             f"(max_depth={self.config.max_depth}, max_workers={self.config.max_workers})")

            while not self.frontier.is_empty():
                if self.cancelled:
                    break
                batch = self.frontier.take(self.config.max_workers)
                async with aclosing(self._run_batch(batch)) as pages:
                    async for page in pages:
                        yield page

            if self.cancelled:
                self.state = CrawlState.CANCELLED
                self.logger.info(f"Crawl cancelled with {len(self.frontier)} targets left")
            else:
                self.state = CrawlState.DRAINING
                self.state = CrawlState.COMPLETED
            self._log_final_stats()

        except Exception as e:
            self.state = CrawlState.FAILED
            self.logger.error(f"Crawl run failed: {e}", exc_info=True)
            raise CrawlRunError(str(e)) from e

        finally:
            if owns_session:
                await self.fetcher.close()

    async def _seed(self):
        """Fetch the root page once and queue its categories."""
        self.frontier.mark_visited(self.root_url)

        categories = {}
        try:
            result = await self.fetcher.fetch(self.root_url)
            if result.ok:
                categories = self.parser.extract_categories(result.content, self.root_url, self.domain)
            else:
                self.logger.log_url_event(logging.WARNING, self.root_url,
                                          f"Category discovery failed: {result.error}")
        except Exception as e:
            # Root page failures give an empty seed, like any other per-URL failure
            self.logger.log_url_event(logging.WARNING, self.root_url,
                                      f"Category discovery failed: {str(e) or type(e).__name__}")

        targets = [
            CrawlTarget(url=url, depth=SEED_DEPTH, category=name)
            for name, url in categories.items()
        ]
        self.stats.discovered += self.frontier.seed(targets)
        self._update_queue_gauge()
        self.logger.info(f"Discovered {len(categories)} categories on {self.root_url}")

    async def _run_batch(self, batch: List[CrawlTarget]) -> AsyncIterator[PageRecord]:
        """Fetch one batch concurrently and apply outcomes as they settle."""
        tasks = [asyncio.create_task(self._process_target(target)) for target in batch]
        self._set_in_flight(len(tasks))

        try:
            for next_done in asyncio.as_completed(tasks):
                outcome = await next_done
                self._set_in_flight(self.stats.in_flight - 1)
                page = await self._apply(outcome)
                if page is not None:
                    yield page
        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                self._set_in_flight(0)

    async def _process_target(self, target: CrawlTarget) -> _Outcome:
        """Delay, fetch and parse one target. Every failure becomes an outcome."""
        if self.config.delay_ms > 0:
            await asyncio.sleep(self.config.delay_seconds)

        start = time.monotonic()
        try:
            result = await self.fetcher.fetch(target.url)
            if not result.ok:
                return _Outcome(target, None, result.error or "Failed to fetch page",
                                time.monotonic() - start)

            parsed = self.parser.parse(result.content, target.url, self.domain)
            return _Outcome(target, parsed.to_record(target.depth, target.category), None,
                            time.monotonic() - start)

        except Exception as e:
            return _Outcome(target, None, str(e) or type(e).__name__, time.monotonic() - start)

    async def _apply(self, outcome: _Outcome) -> Optional[PageRecord]:
        """Update counters, report progress and extend the frontier for one outcome."""
        page = outcome.page
        self.stats.processed += 1

        if page is not None:
            self.stats.successful += 1
            snapshot = ProgressSnapshot(
                url=outcome.target.url,
                status=ProgressStatus.SUCCESS,
                total_processed=self.stats.processed,
                message=f"Found {len(page.links)} links, {page.word_count} words"
            )
            self.logger.log_url_event(logging.DEBUG, page.url, snapshot.message)
        else:
            self.stats.failed += 1
            snapshot = ProgressSnapshot(
                url=outcome.target.url,
                status=ProgressStatus.ERROR,
                total_processed=self.stats.processed,
                message=outcome.error or "Failed to scrape page"
            )
            self.logger.log_url_event(logging.WARNING, outcome.target.url,
                                      f"Failed to scrape: {snapshot.message}")

        if self.monitor:
            self.monitor.record_fetch(outcome.target.url, page is not None, outcome.duration)

        if self.on_progress:
            await self.on_progress(snapshot)

        if page is not None and page.depth < self.config.max_depth:
            self.stats.discovered += self.frontier.offer(page.links, page.depth, page.category)
            self._update_queue_gauge()

        return page

    def _set_in_flight(self, count: int):
        self.stats.in_flight = count
        self.stats.peak_in_flight = max(self.stats.peak_in_flight, count)
        if self.monitor:
            self.monitor.update_in_flight(count)

    def _update_queue_gauge(self):
        if self.monitor:
            self.monitor.update_queue_size(len(self.frontier))

    def _log_final_stats(self):
        self.logger.info(
            f"Crawl {self.state.value}: processed={self.stats.processed}, "
            f"successful={self.stats.successful}, failed={self.stats.failed}, "
            f"discovered={self.stats.discovered}, peak_in_flight={self.stats.peak_in_flight}, "
            f"elapsed={self.stats.elapsed_time:.2f}s"
        )
        self.logger.log_crawler_stat('pages_per_minute', round(self.stats.pages_per_minute, 2))
