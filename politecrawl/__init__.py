"""
politecrawl

The scheduling and robots.txt compliance core of a polite web crawler.
"""

from .crawler.scheduler import Crawler
from .crawler.url_list import CrawlUrl, ErrorCode, FifoUrlList, UrlList

__version__ = "1.0.0"
__description__ = "Paced, concurrency-bounded crawling that obeys robots.txt"

__all__ = ['Crawler', 'CrawlUrl', 'ErrorCode', 'FifoUrlList', 'UrlList']
