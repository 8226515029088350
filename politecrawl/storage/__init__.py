"""
Storage back ends for the crawler.
"""

from .redis_url_list import RedisUrlList

__all__ = ['RedisUrlList']
