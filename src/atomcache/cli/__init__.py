"""
Command-line interface for atomcache.

Provides Click-based CLI commands for inspecting stores and fetching
through the cache.
"""

from atomcache.cli.main import cli

__all__ = ["cli"]
