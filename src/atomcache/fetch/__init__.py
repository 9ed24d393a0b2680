"""
Fetch coordination between stores and data sources.
"""

from atomcache.fetch.coordinator import FetchCoordinator

__all__ = ["FetchCoordinator"]
