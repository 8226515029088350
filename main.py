#!/usr/bin/env python3
"""
Main entry point for the crawler.
"""

import asyncio
import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from politecrawl.crawler.handlers import html_link_parser
from politecrawl.crawler.scheduler import Crawler
from politecrawl.crawler.url_list import CrawlUrl, FifoUrlList, UrlList
from politecrawl.storage.redis_url_list import RedisUrlList
from politecrawl.utils.config import Config, ConfigurationError, load_config
from politecrawl.utils.logger import setup_logging, get_crawler_logger


STATS_INTERVAL = 30


class CrawlerApp:
    """Command line application wrapping a Crawler."""

    def __init__(self):
        self.crawler: Optional[Crawler] = None
        self.url_list: Optional[UrlList] = None
        self.logger = logging.getLogger(__name__)
        self._shutdown_event = asyncio.Event()

    def setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self._request_shutdown, signum)
            except NotImplementedError:
                # Not available on Windows event loops
                signal.signal(signum, lambda s, f: self._request_shutdown(s))

    def _request_shutdown(self, signum):
        self.logger.info(f"Received signal {signum}, initiating shutdown...")
        self._shutdown_event.set()

    def build_url_list(self, config: Config) -> UrlList:
        if config.url_list.type == 'redis':
            return RedisUrlList.from_config(config.redis)
        return FifoUrlList()

    async def run(self, config: Config, max_duration: Optional[float] = None,
                  dry_run: bool = False) -> int:
        """Run the crawler until interrupted or until max_duration seconds have passed."""
        setup_logging(config.logging)
        self.setup_signal_handlers()

        self.logger.info("=== CRAWLER STARTING ===")
        self.logger.info(f"Seed URLs: {config.crawler.seed_urls}")
        self.logger.info(f"Interval: {config.crawler.interval}ms")
        self.logger.info(f"Concurrent requests limit: {config.crawler.concurrent_requests_limit}")
        self.logger.info(f"robots.txt cache time: {config.crawler.robots_cache_time}s")
        self.logger.info(f"URL list: {config.url_list.type}")

        stats_task = None
        try:
            self.url_list = self.build_url_list(config)
            self.crawler = Crawler.from_config(config.crawler, url_list=self.url_list)

            if dry_run:
                self.logger.info("DRY RUN MODE: No actual crawling will be performed")
                await self._dry_run(config)
                return 0

            if config.crawler.follow_links:
                self.crawler.add_handler(
                    html_link_parser(config.crawler.allowed_domains or None),
                    content_type='text/html'
                )

            for seed in config.crawler.seed_urls:
                await self.url_list.insert_if_not_exists(CrawlUrl(url=seed))

            self.crawler.start()
            stats_task = asyncio.create_task(self._stats_reporter())

            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=max_duration)
                self.logger.info("Shutdown requested, stopping crawler...")
            except asyncio.TimeoutError:
                self.logger.info(f"Reached max duration: {max_duration} seconds")

        except Exception as e:
            self.logger.error(f"Fatal error: {e}", exc_info=True)
            return 1

        finally:
            if stats_task:
                stats_task.cancel()
            if self.crawler:
                await self.crawler.close()
                self._log_final_stats()
            if isinstance(self.url_list, RedisUrlList):
                await self.url_list.close()
            self.logger.info("=== CRAWLER FINISHED ===")

        return 0

    async def _stats_reporter(self):
        """Periodically log crawl statistics."""
        stats_logger = get_crawler_logger(__name__)
        while True:
            await asyncio.sleep(STATS_INTERVAL)
            stats = self.crawler.get_stats()
            stats_logger.log_crawler_stat('urls_crawled', stats['urls_crawled'])
            self.logger.info(
                f"Crawl Progress: "
                f"Started={stats['operations_started']}, "
                f"Crawled={stats['urls_crawled']}, "
                f"RobotsBlocked={stats['robots_blocked']}, "
                f"Errors={stats['errors']}, "
                f"Active={stats['active_operations']}, "
                f"Rate={stats['pages_per_minute']:.1f} pages/min"
            )

    def _log_final_stats(self):
        stats = self.crawler.get_stats()
        self.logger.info("=== CRAWL COMPLETED ===")
        self.logger.info(f"Operations started: {stats['operations_started']}")
        self.logger.info(f"URLs crawled: {stats['urls_crawled']}")
        self.logger.info(f"Blocked by robots.txt: {stats['robots_blocked']}")
        self.logger.info(f"Errors: {stats['errors']}")
        self.logger.info(f"Empty pulls: {stats['empty_pulls']}")
        self.logger.info(f"Total time: {stats['elapsed_time']:.2f} seconds")

    async def _dry_run(self, config: Config):
        """Check configuration and connections without crawling."""
        if isinstance(self.url_list, RedisUrlList):
            self.logger.info("Testing Redis connection...")
            try:
                await self.url_list.redis_client.ping()
                self.logger.info("Redis connection successful")
            except Exception as e:
                self.logger.error(f"Redis connection failed: {e}")

        if config.crawler.seed_urls:
            test_url = config.crawler.seed_urls[0]
            self.logger.info(f"Testing robots.txt lookup for {test_url}...")
            allowed = await self.crawler.robots_checker.is_allowed(
                test_url, self.crawler.get_user_agent()
            )
            self.logger.info(f"{test_url} is {'allowed' if allowed else 'disallowed'} by robots.txt")

        self.logger.info("Dry run completed")


def build_config(config_path: str, seeds: List[str]) -> Config:
    """Load the config file if present, then append seeds given on the command line."""
    if Path(config_path).exists():
        config = load_config(config_path)
    else:
        config = Config()
    config.crawler.seed_urls.extend(seeds)
    return config


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Polite web crawler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                                  # Run with config.yaml
  python main.py --seed https://example.com/      # Crawl from a seed URL
  python main.py --max-duration 3600              # Run for 1 hour max
  python main.py --dry-run                        # Test configuration only
        """
    )

    parser.add_argument(
        '--config',
        default='config.yaml',
        help='Path to configuration file (default: config.yaml)'
    )

    parser.add_argument(
        '--seed',
        action='append',
        default=[],
        help='Seed URL to crawl (may be repeated)'
    )

    parser.add_argument(
        '--max-duration',
        type=float,
        help='Maximum crawl duration in seconds'
    )

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Test configuration without actually crawling'
    )

    parser.add_argument(
        '--version',
        action='version',
        version='politecrawl 1.0.0'
    )

    args = parser.parse_args()

    try:
        config = build_config(args.config, args.seed)
    except ConfigurationError as e:
        print(f"Error: {e}")
        return 1

    if not config.crawler.seed_urls and config.url_list.type == 'memory':
        print("Error: no seed URLs. Add crawler.seed_urls to the config file or pass --seed.")
        return 1

    app = CrawlerApp()
    try:
        return asyncio.run(app.run(
            config,
            max_duration=args.max_duration,
            dry_run=args.dry_run
        ))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1


if __name__ == '__main__':
    sys.exit(main())
