"""
HTTP fetch transport used for both robots.txt files and crawl candidates.
"""

import asyncio
import aiohttp
import logging
import time
from typing import Optional, Dict, Protocol
from dataclasses import dataclass
from aiohttp import ClientSession, ClientTimeout, ClientError


@dataclass
class FetchResult:
    """Result of a fetch operation."""
    url: str
    status_code: int
    content: Optional[str] = None
    headers: Optional[Dict[str, str]] = None
    error: Optional[str] = None
    fetch_time: float = 0.0
    content_type: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and 200 <= self.status_code < 300


class FetcherProtocol(Protocol):
    async def fetch(self, url: str) -> FetchResult: ...


class WebFetcher:
    """
    Fetches web pages over a persistent session.
    Network failures are reported in FetchResult.error rather than raised.
    """

    def __init__(self, user_agent: str, request_timeout: float = 30,
                 max_connections: int = 20):
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.max_connections = max_connections

        self.logger = logging.getLogger(__name__)
        self.session: Optional[ClientSession] = None

        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'total_bytes_downloaded': 0
        }

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        """Initialize the fetcher session."""
        if self.session is None:
            timeout = ClientTimeout(total=self.request_timeout)
            headers = {'User-Agent': self.user_agent}

            # Keep-alive connections are reused across requests to the same host
            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers=headers,
                connector=aiohttp.TCPConnector(
                    limit=self.max_connections,
                    limit_per_host=10,
                    ttl_dns_cache=300,
                    use_dns_cache=True
                )
            )
            self.logger.info("WebFetcher session started")

    async def close(self):
        """Close the fetcher session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.info("WebFetcher session closed")

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch a single URL.

        Args:
            url: The URL to fetch

        Returns:
            FetchResult object containing the response data or error information
        """
        if self.session is None:
            await self.start()

        start_time = time.time()
        self.stats['total_requests'] += 1

        try:
            async with self.session.get(url, headers={'User-Agent': self.user_agent}) as response:
                headers = dict(response.headers)
                content_type = response.headers.get('content-type', '').lower()

                content = None
                if self._is_text_content(content_type):
                    content = await self._read_content_safely(response)
                else:
                    self.logger.debug(f"Not reading non-text content: {url} ({content_type})")

                if content:
                    self.stats['total_bytes_downloaded'] += len(content)
                self.stats['successful_requests'] += 1

                self.logger.debug(f"Fetched {url}: {response.status} ({len(content) if content else 0} bytes)")
                return FetchResult(
                    url=url,
                    status_code=response.status,
                    content=content,
                    headers=headers,
                    content_type=content_type,
                    fetch_time=time.time() - start_time
                )

        except asyncio.TimeoutError:
            error_msg = "Request timeout"
            self.logger.warning(f"Timeout fetching {url}")

        except ClientError as e:
            error_msg = f"Client error: {str(e)}"
            self.logger.warning(f"Client error fetching {url}: {e}")

        except ValueError as e:
            # Malformed URLs are rejected by aiohttp before any connection is made
            error_msg = f"Invalid URL: {str(e)}"
            self.logger.warning(f"Invalid URL {url}: {e}")

        self.stats['failed_requests'] += 1
        return FetchResult(
            url=url,
            status_code=0,
            error=error_msg,
            fetch_time=time.time() - start_time
        )

    def _is_text_content(self, content_type: str) -> bool:
        """Check if content type is text-based."""
        text_types = [
            'text/',
            'application/xml',
            'application/xhtml+xml',
            'application/json',
            'application/ld+json'
        ]

        return any(text_type in content_type for text_type in text_types)

    async def _read_content_safely(self, response, max_size: int = 10 * 1024 * 1024) -> Optional[str]:
        """
        Read response content with a size limit.

        Args:
            response: aiohttp response object
            max_size: Maximum content size in bytes (default 10MB)

        Returns:
            Content string or None if too large
        """
        content_length = response.headers.get('content-length')
        if content_length and content_length.isdigit() and int(content_length) > max_size:
            self.logger.warning(f"Content too large ({content_length} bytes): {response.url}")
            return None

        content_bytes = b''
        async for chunk in response.content.iter_chunked(8192):
            content_bytes += chunk
            if len(content_bytes) > max_size:
                self.logger.warning(f"Content exceeded size limit during reading: {response.url}")
                return None

        encoding = response.charset or 'utf-8'
        try:
            return content_bytes.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            return content_bytes.decode('utf-8', errors='ignore')

    def get_stats(self) -> Dict[str, int]:
        """Get fetcher statistics."""
        return self.stats.copy()
