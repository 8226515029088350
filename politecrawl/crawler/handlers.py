"""
Content handlers run on successfully fetched pages.

A handler receives a HandlerContext and may return an iterable of URLs; the
crawler queues those it has not seen before.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional
from urllib.parse import urljoin, urlparse, urlunparse

from bs4 import BeautifulSoup


logger = logging.getLogger(__name__)


@dataclass
class HandlerContext:
    """What a content handler sees of a fetched page."""
    url: str
    content: Optional[str]
    content_type: str
    status_code: int


Handler = Callable[[HandlerContext], Optional[Iterable[str]]]


@dataclass
class RegisteredHandler:
    handler: Handler
    content_type: Optional[str] = None

    def accepts(self, content_type: Optional[str]) -> bool:
        if self.content_type is None:
            return True
        mime = (content_type or '').split(';', 1)[0].strip().lower()
        return mime.startswith(self.content_type.lower())


def normalize_url(url: str) -> str:
    """Normalize URL by lower-casing the host and removing the fragment."""
    parsed = urlparse(url)
    return urlunparse((
        parsed.scheme,
        parsed.netloc.lower(),
        parsed.path,
        parsed.params,
        parsed.query,
        ''
    ))


def html_link_parser(hostnames: Optional[List[str]] = None) -> Handler:
    """
    Build a handler that extracts http(s) links from HTML pages.

    Args:
        hostnames: If given, only links to these hosts are returned

    Returns:
        Handler returning absolute, fragment-free URLs
    """
    allowed = {h.lower() for h in hostnames} if hostnames else set()

    def handler(context: HandlerContext) -> List[str]:
        if not context.content:
            return []

        soup = BeautifulSoup(context.content, 'lxml')
        links = []
        seen = set()

        for link in soup.find_all('a', href=True):
            href = link['href'].strip()
            if not href or href.startswith('#'):
                continue

            absolute_url = normalize_url(urljoin(context.url, href))
            parsed = urlparse(absolute_url)
            if parsed.scheme not in ('http', 'https') or not parsed.netloc:
                continue
            if allowed and parsed.hostname not in allowed:
                continue

            if absolute_url not in seen:
                seen.add(absolute_url)
                links.append(absolute_url)

        logger.debug(f"Extracted {len(links)} links from {context.url}")
        return links

    return handler
