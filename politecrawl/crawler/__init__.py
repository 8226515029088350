"""
Crawler core components.
"""

from .url_list import UrlList, FifoUrlList, CrawlUrl, ErrorCode
from .fetcher import WebFetcher, FetchResult, FetcherProtocol
from .robots import RobotsCache, RobotsChecker, RobotsRules, parse_robots_txt
from .handlers import HandlerContext, html_link_parser
from .operation import CrawlOperation
from .scheduler import Crawler

__all__ = [
    'UrlList', 'FifoUrlList', 'CrawlUrl', 'ErrorCode',
    'WebFetcher', 'FetchResult', 'FetcherProtocol',
    'RobotsCache', 'RobotsChecker', 'RobotsRules', 'parse_robots_txt',
    'HandlerContext', 'html_link_parser',
    'CrawlOperation', 'Crawler'
]
