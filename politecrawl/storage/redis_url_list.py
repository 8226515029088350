"""
Redis-backed URL list, for crawls that outlive a single process.
"""

import json
import logging
from typing import Optional

import redis.asyncio as redis

from ..crawler.url_list import CrawlUrl, UrlList
from ..utils.config import RedisConfig


class RedisUrlList(UrlList):
    """
    URL list kept in Redis.

    The queue is a Redis list of JSON-encoded URLs, the URLs seen so far a
    Redis set and the crawl outcomes a Redis hash keyed by URL. Redis errors
    are raised to the caller.
    """

    def __init__(self, redis_client: redis.Redis, key_prefix: str = "politecrawl"):
        self.redis_client = redis_client
        self.logger = logging.getLogger(__name__)

        # Redis keys
        self.queue_key = f"{key_prefix}:queue"
        self.seen_key = f"{key_prefix}:seen"
        self.outcomes_key = f"{key_prefix}:outcomes"

    @classmethod
    def from_config(cls, config: RedisConfig) -> 'RedisUrlList':
        client = redis.Redis(
            host=config.host,
            port=config.port,
            db=config.db,
            password=config.password,
            decode_responses=False
        )
        return cls(client, key_prefix=config.key_prefix)

    @staticmethod
    def _decode(data) -> CrawlUrl:
        if isinstance(data, bytes):
            data = data.decode('utf-8')
        return CrawlUrl.from_dict(json.loads(data))

    async def get_next_url(self) -> Optional[CrawlUrl]:
        data = await self.redis_client.lpop(self.queue_key)
        if data is None:
            return None

        url = self._decode(data)
        self.logger.debug(f"Retrieved URL from Redis: {url.url}")
        return url

    async def insert(self, url: CrawlUrl):
        if not url.is_error and url.status_code is None:
            # Not crawled yet
            await self.insert_if_not_exists(url)
            return

        await self.redis_client.sadd(self.seen_key, url.url)
        await self.redis_client.hset(self.outcomes_key, url.url, json.dumps(url.to_dict()))
        self.logger.debug(f"Recorded outcome for {url.url}: {url.error_code or 'OK'}")

    async def insert_if_not_exists(self, url: CrawlUrl) -> bool:
        added = await self.redis_client.sadd(self.seen_key, url.url)
        if not added:
            return False

        await self.redis_client.rpush(self.queue_key, json.dumps(url.to_dict()))
        self.logger.debug(f"Added URL to Redis queue: {url.url}")
        return True

    async def get_outcome(self, url: str) -> Optional[CrawlUrl]:
        """Return the recorded outcome for a URL, if it has been crawled."""
        data = await self.redis_client.hget(self.outcomes_key, url)
        return self._decode(data) if data is not None else None

    async def queue_length(self) -> int:
        return await self.redis_client.llen(self.queue_key)

    async def clear(self):
        """Delete the queue, the seen set and all outcomes."""
        await self.redis_client.delete(self.queue_key, self.seen_key, self.outcomes_key)
        self.logger.info(f"Cleared Redis URL list {self.queue_key}")

    async def close(self):
        await self.redis_client.aclose()
