"""
Shared pytest fixtures and stub collaborators for politecrawl tests.
"""

import asyncio
from typing import Callable, Dict, List, Optional, Union

import pytest

from politecrawl.crawler.fetcher import FetchResult
from politecrawl.crawler.url_list import CrawlUrl, UrlList


ROBOTS_TXT = "\n".join([
    "User-agent: *",
    "Allow: /",
    "Disallow: /index17.html",
])


class StubFetcher:
    """Fetch transport that records every requested URL."""

    def __init__(self, responses: Optional[Dict[str, Union[FetchResult, Exception]]] = None,
                 robots_txt: Optional[str] = ROBOTS_TXT, delay: float = 0.001):
        self.responses = responses or {}
        self.robots_txt = robots_txt
        self.delay = delay
        self.calls: List[str] = []
        self.call_times: Dict[str, List[float]] = {}

    async def fetch(self, url: str) -> FetchResult:
        self.calls.append(url)
        self.call_times.setdefault(url, []).append(asyncio.get_running_loop().time())
        if self.delay:
            await asyncio.sleep(self.delay)

        response = self.responses.get(url)
        if isinstance(response, Exception):
            raise response
        if response is not None:
            return response

        if url.endswith("/robots.txt"):
            if self.robots_txt is None:
                return FetchResult(url=url, status_code=404, content="")
            return FetchResult(url=url, status_code=200, content=self.robots_txt,
                               content_type="text/plain")

        return FetchResult(url=url, status_code=200, content="<html></html>",
                           content_type="text/html")

    def count(self, url: str) -> int:
        return self.calls.count(url)

    def robots_calls(self, host: str = "https://example.com") -> int:
        return self.count(f"{host}/robots.txt")

    async def close(self):
        pass


class CountingUrlList(UrlList):
    """
    Endless source of https://example.com/index<N>.html URLs, where N is the
    call count. Pulls take ``delay`` seconds; from ``fail_after`` calls on,
    every pull raises LookupError.
    """

    def __init__(self, delay: float = 0.001, fail_after: int = 20):
        self.delay = delay
        self.fail_after = fail_after
        self.call_count = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.start_times: List[float] = []
        self.inserted: List[CrawlUrl] = []

    async def get_next_url(self) -> Optional[CrawlUrl]:
        self.call_count += 1
        self.start_times.append(asyncio.get_running_loop().time())
        if self.call_count >= self.fail_after:
            raise LookupError("source exhausted")

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        return CrawlUrl(url=f"https://example.com/index{self.call_count}.html")

    async def insert(self, url: CrawlUrl):
        self.inserted.append(url)

    async def insert_if_not_exists(self, url: CrawlUrl) -> bool:
        return False

    def outcome_for(self, url: str) -> Optional[CrawlUrl]:
        for outcome in self.inserted:
            if outcome.url == url:
                return outcome
        return None


class ListUrlList(UrlList):
    """Source handing out a fixed list of URLs, then reporting empty."""

    def __init__(self, urls: List[str], insert_error: Optional[Exception] = None,
                 get_error: Optional[Exception] = None):
        self.urls = list(urls)
        self.insert_error = insert_error
        self.get_error = get_error
        self.inserted: List[CrawlUrl] = []
        self.discovered: List[str] = []

    async def get_next_url(self) -> Optional[CrawlUrl]:
        if self.get_error is not None:
            raise self.get_error
        if not self.urls:
            return None
        return CrawlUrl(url=self.urls.pop(0))

    async def insert(self, url: CrawlUrl):
        if self.insert_error is not None:
            raise self.insert_error
        self.inserted.append(url)

    async def insert_if_not_exists(self, url: CrawlUrl) -> bool:
        if url.url in self.discovered:
            return False
        self.discovered.append(url.url)
        return True


def run(coro):
    """Run a coroutine on a fresh event loop."""
    return asyncio.run(coro)


@pytest.fixture
def stub_fetcher() -> StubFetcher:
    return StubFetcher()


@pytest.fixture
def counting_url_list() -> CountingUrlList:
    return CountingUrlList()


class EventRecorder:
    """Collects crawler events as (name, args) tuples."""

    def __init__(self):
        self.events: List[tuple] = []

    def listener(self, name: str) -> Callable:
        return lambda *args: self.events.append((name, args))

    def named(self, name: str) -> List[tuple]:
        return [args for event, args in self.events if event == name]


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()
