"""
robots.txt parsing, per-host policy caching and allow/deny decisions.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .fetcher import FetcherProtocol
from .url_list import split_url


ROBOTS_PATH = "/robots.txt"


@dataclass
class RobotsRule:
    """A single Allow or Disallow directive."""
    allow: bool
    pattern: str
    _regex: Optional[re.Pattern] = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        anchored = self.pattern.endswith('$')
        body = self.pattern[:-1] if anchored else self.pattern
        regex = '.*'.join(re.escape(part) for part in body.split('*'))
        self._regex = re.compile(regex + ('$' if anchored else ''))

    @property
    def specificity(self) -> int:
        return len(self.pattern)

    def matches(self, path: str) -> bool:
        return self._regex.match(path) is not None


@dataclass
class RobotsGroup:
    """Rules that apply to one or more user-agent tokens."""
    user_agents: List[str] = field(default_factory=list)
    rules: List[RobotsRule] = field(default_factory=list)


@dataclass
class RobotsRules:
    """Parsed robots.txt. An instance without groups allows everything."""
    groups: List[RobotsGroup] = field(default_factory=list)

    def rules_for(self, user_agent: str) -> List[RobotsRule]:
        """
        Select the rules for an agent: the groups whose token is the longest
        substring of the agent string, falling back to the ``*`` groups.
        """
        agent = user_agent.lower()
        best_token = None
        for group in self.groups:
            for token in group.user_agents:
                if token and token != '*' and token in agent:
                    if best_token is None or len(token) > len(best_token):
                        best_token = token

        selected = best_token or '*'
        rules = []
        for group in self.groups:
            if selected in group.user_agents:
                rules.extend(group.rules)
        return rules

    def is_allowed(self, path: str, user_agent: str, tie_breaker: str = 'allow') -> bool:
        """
        Evaluate a path. The longest matching pattern wins; equally long allow
        and disallow patterns are settled by ``tie_breaker``.
        """
        best: Optional[RobotsRule] = None
        for rule in self.rules_for(user_agent):
            if not rule.matches(path):
                continue
            if best is None or rule.specificity > best.specificity:
                best = rule
            elif rule.specificity == best.specificity and rule.allow != best.allow:
                best = rule if rule.allow == (tie_breaker == 'allow') else best

        return True if best is None else best.allow


def parse_robots_txt(text: str) -> RobotsRules:
    """Parse robots.txt content. Unknown fields and malformed lines are skipped."""
    groups: List[RobotsGroup] = []
    current: Optional[RobotsGroup] = None
    collecting_agents = False

    for raw_line in text.splitlines():
        line = raw_line.split('#', 1)[0].strip()
        if ':' not in line:
            continue

        name, value = line.split(':', 1)
        name = name.strip().lower()
        value = value.strip()

        if name == 'user-agent':
            if not collecting_agents:
                current = RobotsGroup()
                groups.append(current)
                collecting_agents = True
            current.user_agents.append(value.lower())
        elif name in ('allow', 'disallow'):
            collecting_agents = False
            # Rules before the first user-agent line and empty values are ignored
            if current is None or not value:
                continue
            current.rules.append(RobotsRule(allow=(name == 'allow'), pattern=value))

    return RobotsRules(groups=groups)


@dataclass
class RobotsCacheEntry:
    rules: RobotsRules
    fetched_at: float


class RobotsCache:
    """
    Time-bounded cache of parsed robots.txt files, keyed by host
    (``scheme://netloc``).

    Refreshes are coalesced: while a fetch for a host is outstanding, other
    lookups for that host wait for it instead of fetching again. Fetch
    failures produce empty rules, which allow everything.
    """

    def __init__(self, fetcher: FetcherProtocol, ttl: float = 3600,
                 clock: Optional[Callable[[], float]] = None):
        self.fetcher = fetcher
        self.ttl = ttl
        self.logger = logging.getLogger(__name__)
        self._clock = clock or time.monotonic
        self._entries: Dict[str, RobotsCacheEntry] = {}
        self._refreshing: Dict[str, asyncio.Task] = {}

    async def get(self, host: str) -> RobotsRules:
        """Return the rules for a host, fetching them on miss or expiry."""
        host = host.lower().rstrip('/')

        entry = self._entries.get(host)
        if entry is not None and self._clock() - entry.fetched_at < self.ttl:
            return entry.rules

        task = self._refreshing.get(host)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._refresh(host))
            self._refreshing[host] = task
            task.add_done_callback(lambda t, h=host: self._forget_refresh(h, t))

        # A cancelled caller must not cancel the refresh other callers share
        return await asyncio.shield(task)

    def _forget_refresh(self, host: str, task: asyncio.Task):
        if self._refreshing.get(host) is task:
            del self._refreshing[host]

    async def _refresh(self, host: str) -> RobotsRules:
        robots_url = f"{host}{ROBOTS_PATH}"
        rules = RobotsRules()
        # Entries age from the request, so a slow fetch does not extend the TTL
        requested_at = self._clock()

        try:
            result = await self.fetcher.fetch(robots_url)
            if result.error:
                self.logger.warning(f"Could not fetch {robots_url}: {result.error}; allowing all")
            elif not result.ok:
                self.logger.info(f"{robots_url} returned {result.status_code}; allowing all")
            else:
                rules = parse_robots_txt(result.content or "")
                self.logger.debug(f"Parsed {robots_url}: {len(rules.groups)} groups")
        except Exception as e:
            # Fail open: a missing policy never halts crawling
            self.logger.warning(f"Error loading {robots_url}: {e}; allowing all")

        self._entries[host] = RobotsCacheEntry(rules=rules, fetched_at=requested_at)
        return rules

    def invalidate(self, host: Optional[str] = None):
        """Drop the cached rules for one host, or for every host."""
        if host is None:
            self._entries.clear()
        else:
            self._entries.pop(host.lower().rstrip('/'), None)

    def __len__(self) -> int:
        return len(self._entries)


class RobotsChecker:
    """Decides whether a URL may be crawled under a given user agent."""

    def __init__(self, cache: RobotsCache, tie_breaker: str = 'allow'):
        self.cache = cache
        self.tie_breaker = tie_breaker

    async def is_allowed(self, url: str, user_agent: str) -> bool:
        """Raises ValueError for a URL that cannot be parsed."""
        host, path = split_url(url)
        if path == ROBOTS_PATH:
            return True

        rules = await self.cache.get(host)
        return rules.is_allowed(path, user_agent, self.tie_breaker)
