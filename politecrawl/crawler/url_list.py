"""
URL source/sink used by the crawler.

A URL list hands out crawl candidates through ``get_next_url`` and records
crawl outcomes through ``insert``. ``get_next_url`` returns ``None`` when
nothing is currently available; any other failure is raised.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Deque, Dict, Optional, Set, Tuple
from urllib.parse import urlparse


def split_url(url: str) -> Tuple[str, str]:
    """
    Split a URL into its host (``scheme://netloc``, lower-cased) and its path
    plus query string (``/`` when empty). Raises ValueError for malformed URLs.
    """
    parsed = urlparse(url)
    path = parsed.path or "/"
    if parsed.query:
        path = f"{path}?{parsed.query}"
    return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}", path


class ErrorCode(str, Enum):
    """Classification of a failed crawl."""
    REQUEST_ERROR = "REQUEST_ERROR"
    HTTP_ERROR = "HTTP_ERROR"
    ROBOTS_NOT_ALLOWED = "ROBOTS_NOT_ALLOWED"
    HANDLERS_ERROR = "HANDLERS_ERROR"


@dataclass
class CrawlUrl:
    """A crawl candidate, and after crawling, its outcome."""
    url: str
    error_code: Optional[ErrorCode] = None
    status_code: Optional[int] = None
    content_type: Optional[str] = None
    content: Optional[str] = None
    discovered_time: float = field(default_factory=time.time)

    @property
    def host(self) -> str:
        return split_url(self.url)[0]

    @property
    def path(self) -> str:
        return split_url(self.url)[1]

    @property
    def is_error(self) -> bool:
        return self.error_code is not None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization. Page content is not stored."""
        return {
            'url': self.url,
            'error_code': self.error_code.value if self.error_code else None,
            'status_code': self.status_code,
            'content_type': self.content_type,
            'discovered_time': self.discovered_time
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'CrawlUrl':
        """Create CrawlUrl from dictionary."""
        error_code = data.get('error_code')
        return cls(
            url=data['url'],
            error_code=ErrorCode(error_code) if error_code else None,
            status_code=data.get('status_code'),
            content_type=data.get('content_type'),
            discovered_time=data.get('discovered_time', time.time())
        )


class UrlList:
    """Abstract base class for URL sources/sinks."""

    async def get_next_url(self) -> Optional[CrawlUrl]:
        """Return the next candidate, or None when nothing is available."""
        raise NotImplementedError

    async def insert(self, url: CrawlUrl):
        """Record a crawl outcome."""
        raise NotImplementedError

    async def insert_if_not_exists(self, url: CrawlUrl) -> bool:
        """Queue a URL unless it has been seen before. Returns True if queued."""
        raise NotImplementedError


class FifoUrlList(UrlList):
    """
    In-memory first-in first-out URL list.
    Each distinct URL is handed out at most once; outcomes are kept per URL.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._queue: Deque[CrawlUrl] = deque()
        self._seen: Set[str] = set()
        self._outcomes: Dict[str, CrawlUrl] = {}

    async def get_next_url(self) -> Optional[CrawlUrl]:
        if not self._queue:
            return None
        return self._queue.popleft()

    async def insert(self, url: CrawlUrl):
        if not url.is_error and url.status_code is None:
            # Not crawled yet
            await self.insert_if_not_exists(url)
            return
        self._seen.add(url.url)
        # Page bodies are not kept once the outcome is recorded
        self._outcomes[url.url] = replace(url, content=None)
        self.logger.debug(f"Recorded outcome for {url.url}: {url.error_code or 'OK'}")

    async def insert_if_not_exists(self, url: CrawlUrl) -> bool:
        if url.url in self._seen:
            return False
        self._seen.add(url.url)
        self._queue.append(url)
        self.logger.debug(f"Queued URL: {url.url}")
        return True

    def get_outcome(self, url: str) -> Optional[CrawlUrl]:
        """Return the recorded outcome for a URL, if it has been crawled."""
        return self._outcomes.get(url)

    def __len__(self) -> int:
        return len(self._queue)
