"""
Data sources fetching raw content for the cache.
"""

from atomcache.sources.base import DataSource, read_content
from atomcache.sources.http import HttpDataSource

__all__ = [
    "DataSource",
    "HttpDataSource",
    "read_content",
]
