"""
Scraping Module - Fetch, extract, cache and aggregate campus data.
==================================================================

- urls: URL composition for platform paths
- fetcher: Async HTTP client with typed error mapping
- retry: Bounded retry policy for idempotent requests
- extractor: Table-driven HTML to record extraction
- cache: Expiring in-memory cache with a background sweep
- platforms: Authenticated session per external site
- aggregator: Category routing, fan-out, merge and caching

Flow:
    Aggregator → cache miss → PlatformSession → PageFetcher → HtmlExtractor → records
"""

from campusbot.scraping.aggregator import Aggregator, create_aggregator, merge_courses
from campusbot.scraping.cache import CacheStats, ExpiringCache
from campusbot.scraping.extractor import HtmlExtractor, RecordKind
from campusbot.scraping.fetcher import FetchedPage, PageFetcher
from campusbot.scraping.retry import RetryPolicy
from campusbot.scraping.urls import UrlBuilder, build_query_url, build_url

__all__ = [
    # Aggregation
    "Aggregator",
    "create_aggregator",
    "merge_courses",
    # Cache
    "ExpiringCache",
    "CacheStats",
    # Extraction
    "HtmlExtractor",
    "RecordKind",
    # HTTP
    "PageFetcher",
    "FetchedPage",
    "RetryPolicy",
    # URLs
    "UrlBuilder",
    "build_url",
    "build_query_url",
]
