"""
Crawler scheduler: starts crawl operations at a bounded rate and with bounded
parallelism.
"""

import asyncio
import logging
import math
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set

from .fetcher import FetcherProtocol, WebFetcher
from .handlers import Handler, RegisteredHandler
from .operation import CrawlOperation
from .robots import RobotsCache, RobotsChecker
from .url_list import CrawlUrl, ErrorCode, FifoUrlList, UrlList
from ..utils.config import (
    CrawlerConfig, DEFAULT_CONCURRENT_REQUESTS_LIMIT, DEFAULT_INTERVAL,
    DEFAULT_REQUEST_TIMEOUT, DEFAULT_ROBOTS_CACHE_TIME, DEFAULT_USER_AGENT,
    validate_crawler_options
)


EVENTS = ('crawl_url', 'crawled_url', 'url_list_empty', 'crawl_error', 'handlers_error')

# Lower bound on the periodic timer so that interval=0 does not spin the loop
MIN_TIMER_PERIOD = 0.001


@dataclass
class CrawlStats:
    """Statistics for crawl operations."""
    start_time: float
    operations_started: int = 0
    urls_crawled: int = 0
    robots_blocked: int = 0
    errors: int = 0
    empty_pulls: int = 0

    @property
    def elapsed_time(self) -> float:
        return time.time() - self.start_time

    @property
    def pages_per_minute(self) -> float:
        elapsed_minutes = self.elapsed_time / 60
        return self.urls_crawled / elapsed_minutes if elapsed_minutes > 0 else 0


class Crawler:
    """
    Paces crawl operations.

    A new operation starts only when at least ``interval`` milliseconds have
    passed since the previous start and fewer than
    ``concurrent_requests_limit`` operations are in flight. Eligibility is
    checked by a periodic timer and whenever an operation completes. All
    checks and state transitions run on the event loop without awaiting in
    between, so two checks can never both claim the last free slot.
    """

    def __init__(self, url_list: Optional[UrlList] = None,
                 interval: float = DEFAULT_INTERVAL,
                 concurrent_requests_limit: int = DEFAULT_CONCURRENT_REQUESTS_LIMIT,
                 user_agent: str = DEFAULT_USER_AGENT,
                 robots_cache_time: float = DEFAULT_ROBOTS_CACHE_TIME,
                 request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
                 robots_tie_breaker: str = 'allow',
                 fetcher: Optional[FetcherProtocol] = None):
        validate_crawler_options(interval, concurrent_requests_limit,
                                 robots_cache_time, robots_tie_breaker)

        self.logger = logging.getLogger(__name__)

        self._url_list = url_list if url_list is not None else FifoUrlList()
        self._interval = interval
        self._concurrent_requests_limit = concurrent_requests_limit
        self._user_agent = user_agent
        self._robots_cache_time = robots_cache_time

        # Components
        self._owns_fetcher = fetcher is None
        self.fetcher = fetcher if fetcher is not None else WebFetcher(user_agent, request_timeout)
        self.robots_cache = RobotsCache(self.fetcher, ttl=robots_cache_time)
        self.robots_checker = RobotsChecker(self.robots_cache, tie_breaker=robots_tie_breaker)
        self._handlers: List[RegisteredHandler] = []
        self._listeners: Dict[str, List[Callable]] = defaultdict(list)

        # Scheduler state, only touched from the event loop
        self.stats = CrawlStats(start_time=time.time())
        self.is_running = False
        self._active_count = 0
        self._last_start_time = -math.inf
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._next_tick = 0.0
        self._wakeup: Optional[asyncio.TimerHandle] = None
        self._operations: Set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, config: CrawlerConfig, url_list: Optional[UrlList] = None,
                    fetcher: Optional[FetcherProtocol] = None) -> 'Crawler':
        """Build a crawler from the crawler section of a loaded config file."""
        return cls(
            url_list=url_list,
            interval=config.interval,
            concurrent_requests_limit=config.concurrent_requests_limit,
            user_agent=config.user_agent,
            robots_cache_time=config.robots_cache_time,
            request_timeout=config.request_timeout,
            robots_tie_breaker=config.robots_tie_breaker,
            fetcher=fetcher
        )

    def get_url_list(self) -> UrlList:
        return self._url_list

    def get_interval(self) -> float:
        return self._interval

    def get_concurrent_requests_limit(self) -> int:
        return self._concurrent_requests_limit

    def get_user_agent(self) -> str:
        return self._user_agent

    def get_robots_cache_time(self) -> float:
        return self._robots_cache_time

    @property
    def active_count(self) -> int:
        return self._active_count

    def add_handler(self, handler: Handler, content_type: Optional[str] = None):
        """
        Register a content handler for successfully fetched pages.

        Args:
            handler: Callable taking a HandlerContext and returning URLs to queue (or None)
            content_type: Only run for responses whose MIME type starts with this
        """
        self._handlers.append(RegisteredHandler(handler=handler, content_type=content_type))

    def on(self, event: str, callback: Callable):
        """Subscribe to a crawler event. Callbacks are called synchronously."""
        if event not in EVENTS:
            raise ValueError(f"Unknown event {event!r}; expected one of {', '.join(EVENTS)}")
        self._listeners[event].append(callback)

    def _emit(self, event: str, *args):
        if event == 'crawled_url':
            outcome: CrawlUrl = args[0]
            if outcome.error_code == ErrorCode.ROBOTS_NOT_ALLOWED:
                self.stats.robots_blocked += 1
            else:
                self.stats.urls_crawled += 1
                if outcome.error_code is not None:
                    self.stats.errors += 1
        elif event == 'crawl_error':
            self.stats.errors += 1
        elif event == 'url_list_empty':
            self.stats.empty_pulls += 1

        for callback in list(self._listeners[event]):
            try:
                callback(*args)
            except Exception:
                self.logger.exception(f"Listener for {event} raised")

    def start(self) -> bool:
        """
        Start crawling. Must be called with an event loop running.

        Returns:
            False if the crawler was already running, True otherwise
        """
        if self.is_running:
            self.logger.warning("Crawler is already running")
            return False

        self._loop = asyncio.get_running_loop()
        self.is_running = True
        self.stats = CrawlStats(start_time=time.time())
        # Operations left over from a previous run still hold their slots
        self._active_count = len(self._operations)
        self._last_start_time = -math.inf

        self._next_tick = self._loop.time() + self._timer_period
        self._timer = self._loop.call_at(self._next_tick, self._on_timer)

        self.logger.info(
            f"Crawler started: interval={self._interval}ms, "
            f"concurrency={self._concurrent_requests_limit}"
        )
        self._maybe_start_operation()
        return True

    def stop(self):
        """Stop starting new operations. In-flight operations run to completion."""
        if not self.is_running:
            return

        self.is_running = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._wakeup is not None:
            self._wakeup.cancel()
            self._wakeup = None

        self.logger.info(f"Crawler stopped with {self._active_count} operations in flight")

    async def wait_idle(self):
        """Wait until no operation is in flight."""
        while self._operations:
            await asyncio.gather(*list(self._operations), return_exceptions=True)

    async def close(self):
        """Stop, wait for in-flight operations and release the default fetcher."""
        self.stop()
        await self.wait_idle()
        if self._owns_fetcher:
            await self.fetcher.close()

    @property
    def _timer_period(self) -> float:
        return max(self._interval / 1000.0, MIN_TIMER_PERIOD)

    def _on_timer(self):
        if not self.is_running:
            return
        # Anchor on the previous tick so the timer does not drift
        self._next_tick += self._timer_period
        self._timer = self._loop.call_at(self._next_tick, self._on_timer)
        self._maybe_start_operation()

    def _on_wakeup(self):
        self._wakeup = None
        self._maybe_start_operation()

    def _maybe_start_operation(self):
        """Start one operation if both the pacing and the concurrency limits allow it."""
        if not self.is_running:
            return

        if self._active_count >= self._concurrent_requests_limit:
            return

        now = self._loop.time()
        remaining = self._last_start_time + self._interval / 1000.0 - now
        if remaining > 0:
            # A slot is free but the interval has not elapsed yet
            if self._wakeup is None:
                self._wakeup = self._loop.call_later(remaining, self._on_wakeup)
            return

        self._active_count += 1
        self._last_start_time = now
        self.stats.operations_started += 1

        operation = CrawlOperation(
            url_list=self._url_list,
            fetcher=self.fetcher,
            robots_checker=self.robots_checker,
            user_agent=self._user_agent,
            handlers=list(self._handlers),
            emit=self._emit
        )
        task = self._loop.create_task(operation.run())
        self._operations.add(task)
        task.add_done_callback(self._on_operation_done)

    def _on_operation_done(self, task: asyncio.Task):
        self._operations.discard(task)
        self._active_count -= 1

        if not task.cancelled() and task.exception() is not None:
            error = task.exception()
            self.logger.error(f"Crawl operation failed: {error}")
            self._emit('crawl_error', error, None)

        self._maybe_start_operation()

    def get_stats(self) -> Dict:
        """Get current crawl statistics."""
        return {
            'operations_started': self.stats.operations_started,
            'urls_crawled': self.stats.urls_crawled,
            'robots_blocked': self.stats.robots_blocked,
            'errors': self.stats.errors,
            'empty_pulls': self.stats.empty_pulls,
            'elapsed_time': self.stats.elapsed_time,
            'pages_per_minute': self.stats.pages_per_minute,
            'active_operations': self._active_count,
            'is_running': self.is_running
        }
