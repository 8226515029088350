"""
A single crawl operation: pull a candidate, check robots.txt, fetch, record.
"""

import inspect
import logging
from dataclasses import replace
from typing import Callable, Optional, Sequence

from .fetcher import FetcherProtocol
from .handlers import HandlerContext, RegisteredHandler
from .robots import RobotsChecker
from .url_list import CrawlUrl, ErrorCode, UrlList
from ..utils.logger import get_crawler_logger


class CrawlOperation:
    """
    One pull-check-fetch-record cycle.

    Every failure is contained here: ``run`` never raises (short of
    cancellation), failures are logged and reported through ``emit``.
    """

    def __init__(self, url_list: UrlList, fetcher: FetcherProtocol,
                 robots_checker: RobotsChecker, user_agent: str,
                 handlers: Sequence[RegisteredHandler] = (),
                 emit: Optional[Callable[..., None]] = None):
        self.url_list = url_list
        self.fetcher = fetcher
        self.robots_checker = robots_checker
        self.user_agent = user_agent
        self.handlers = handlers
        self._emit = emit or (lambda event, *args: None)
        self.logger = get_crawler_logger(__name__)

    async def run(self) -> Optional[CrawlUrl]:
        """Run the operation. Returns the recorded outcome, or None if nothing was recorded."""
        try:
            candidate = await self.url_list.get_next_url()
        except Exception as e:
            self.logger.error(f"Error getting next URL: {e}")
            self._emit('crawl_error', e, None)
            return None

        if candidate is None:
            self.logger.debug("URL list is empty")
            self._emit('url_list_empty')
            return None

        self._emit('crawl_url', candidate.url)

        try:
            outcome = await self._crawl(candidate)
            await self.url_list.insert(outcome)
        except Exception as e:
            self.logger.error(f"Error processing {candidate.url}: {e}")
            self._emit('crawl_error', e, candidate.url)
            return None

        self.logger.log_url_event(
            logging.DEBUG if outcome.error_code is None else logging.INFO,
            outcome.url,
            f"Crawled {outcome.url}: {outcome.error_code.value if outcome.error_code else outcome.status_code}",
            extra={'error_code': outcome.error_code.value if outcome.error_code else None}
        )
        self._emit('crawled_url', outcome)
        return outcome

    async def _crawl(self, candidate: CrawlUrl) -> CrawlUrl:
        try:
            allowed = await self.robots_checker.is_allowed(candidate.url, self.user_agent)
        except ValueError as e:
            self.logger.warning(f"Malformed URL {candidate.url}: {e}")
            return replace(candidate, error_code=ErrorCode.REQUEST_ERROR)

        if not allowed:
            return replace(candidate, error_code=ErrorCode.ROBOTS_NOT_ALLOWED)

        try:
            result = await self.fetcher.fetch(candidate.url)
        except Exception as e:
            self.logger.warning(f"Fetch of {candidate.url} raised: {e}")
            return replace(candidate, error_code=ErrorCode.REQUEST_ERROR)

        if result.error:
            return replace(candidate, error_code=ErrorCode.REQUEST_ERROR)

        if result.status_code >= 400:
            return replace(candidate, error_code=ErrorCode.HTTP_ERROR,
                           status_code=result.status_code,
                           content_type=result.content_type)

        outcome = replace(candidate, error_code=None,
                          status_code=result.status_code,
                          content_type=result.content_type,
                          content=result.content)

        try:
            await self._run_handlers(outcome)
        except Exception as e:
            self.logger.error(f"Content handler failed for {outcome.url}: {e}")
            outcome = replace(outcome, error_code=ErrorCode.HANDLERS_ERROR)
            self._emit('handlers_error', e, outcome)

        return outcome

    async def _run_handlers(self, outcome: CrawlUrl):
        context = HandlerContext(
            url=outcome.url,
            content=outcome.content,
            content_type=outcome.content_type or '',
            status_code=outcome.status_code
        )

        for registered in self.handlers:
            if not registered.accepts(outcome.content_type):
                continue

            links = registered.handler(context)
            if inspect.isawaitable(links):
                links = await links

            added = 0
            for link in links or ():
                if await self.url_list.insert_if_not_exists(CrawlUrl(url=link)):
                    added += 1
            if added:
                self.logger.debug(f"Queued {added} new URLs from {outcome.url}")
