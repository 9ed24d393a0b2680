"""
Tests for the command-line interface.
"""

import pytest
from click.testing import CliRunner

from atomcache import __version__
from atomcache.cache.registry import StoreRegistry
from atomcache.cache.sqlite import SqliteStore
from atomcache.cli.main import cli
from atomcache.config import get_settings
from atomcache.core.exceptions import TransportError
from atomcache.core.models import Atom, utcnow
from atomcache.sources.http import HttpDataSource


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def populated(settings_env):
    """Write two atoms into store 0 of the configured registry."""
    registry = StoreRegistry.from_settings(get_settings())
    store = registry.get(0)
    store.write_atom("alpha", Atom(utcnow(), b"first value"))
    store.write_atom("beta", Atom(utcnow(), b"second value"))
    registry.close_all()
    return settings_env


def read_keys() -> list[str]:
    registry = StoreRegistry.from_settings(get_settings())
    try:
        return sorted(registry.get(0).get_keys())
    finally:
        registry.close_all()


class TestCli:
    """Tests for the atomcache commands."""

    def test_version(self, runner):
        """Test the version option."""
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_keys(self, runner, populated):
        """Test listing keys."""
        result = runner.invoke(cli, ["keys"])
        assert result.exit_code == 0
        assert "alpha" in result.output
        assert "beta" in result.output

    def test_keys_skips_key_removed_while_listing(self, runner, populated, monkeypatch):
        """Test that a key without last update is left out of the listing."""
        original = SqliteStore.get_last_update

        def get_last_update(self, key):
            return None if key == "alpha" else original(self, key)

        monkeypatch.setattr(SqliteStore, "get_last_update", get_last_update)

        result = runner.invoke(cli, ["keys"])
        assert result.exit_code == 0
        assert "alpha" not in result.output
        assert "beta" in result.output

    def test_keys_empty(self, runner, settings_env):
        """Test listing an empty store."""
        result = runner.invoke(cli, ["keys"])
        assert result.exit_code == 0
        assert "empty" in result.output

    def test_show(self, runner, populated):
        """Test showing one atom."""
        result = runner.invoke(cli, ["show", "alpha"])
        assert result.exit_code == 0
        assert "first value" in result.output

    def test_show_missing(self, runner, populated):
        """Test showing an absent key."""
        result = runner.invoke(cli, ["show", "gamma"])
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_remove(self, runner, populated):
        """Test removing one key."""
        result = runner.invoke(cli, ["remove", "alpha"])
        assert result.exit_code == 0
        assert read_keys() == ["beta"]

    def test_clear(self, runner, populated):
        """Test clearing the store."""
        result = runner.invoke(cli, ["clear"])
        assert result.exit_code == 0
        assert read_keys() == []

    def test_cleanup_max_entries(self, runner, populated):
        """Test cleaning up with an explicit policy."""
        result = runner.invoke(cli, ["cleanup", "--max-entries", "1"])
        assert result.exit_code == 0
        assert "Removed 1" in result.output
        assert len(read_keys()) == 1

    def test_cleanup_without_policy(self, runner, populated):
        """Test that cleanup without any policy removes nothing."""
        result = runner.invoke(cli, ["cleanup"])
        assert result.exit_code == 0
        assert "Warning:" in result.output
        assert read_keys() == ["alpha", "beta"]

    def test_stats(self, runner, populated):
        """Test store statistics."""
        result = runner.invoke(cli, ["stats"])
        assert result.exit_code == 0
        assert "Entries" in result.output
        assert "database" in result.output

    def test_unknown_store_index(self, runner, settings_env):
        """Test selecting a store that is not configured."""
        result = runner.invoke(cli, ["--store-index", "5", "keys"])
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_file_backend(self, runner, settings_env, monkeypatch):
        """Test the commands on the file backend."""
        monkeypatch.setenv("ATOMCACHE_BACKEND", "file")
        get_settings.cache_clear()

        result = runner.invoke(cli, ["stats"])
        assert result.exit_code == 0
        assert "file" in result.output

    def test_fetch(self, runner, settings_env, monkeypatch):
        """Test fetching through the cache, then from the store."""
        calls = []

        def fake_fetch(self, descriptor):
            calls.append(descriptor.url)
            return b"body from network"

        monkeypatch.setattr(HttpDataSource, "fetch", fake_fetch)

        first = runner.invoke(cli, ["fetch", "http://example.test/data"])
        second = runner.invoke(cli, ["fetch", "http://example.test/data"])

        assert first.exit_code == 0
        assert "body from network" in first.output
        assert "network" in first.output
        assert second.exit_code == 0
        assert "store" in second.output
        assert calls == ["http://example.test/data"]
        assert read_keys() == ["http://example.test/data"]

    def test_fetch_no_cache(self, runner, settings_env, monkeypatch):
        """Test that --no-cache always fetches."""
        calls = []

        def fake_fetch(self, descriptor):
            calls.append(descriptor.url)
            return b"body"

        monkeypatch.setattr(HttpDataSource, "fetch", fake_fetch)

        runner.invoke(cli, ["fetch", "http://example.test/data"])
        result = runner.invoke(cli, ["fetch", "--no-cache", "http://example.test/data"])

        assert result.exit_code == 0
        assert len(calls) == 2

    def test_fetch_failure(self, runner, settings_env, monkeypatch):
        """Test that fetch failures exit with status 1."""

        def failing_fetch(self, descriptor):
            raise TransportError(descriptor.url, 500, details="Internal Server Error")

        monkeypatch.setattr(HttpDataSource, "fetch", failing_fetch)

        result = runner.invoke(cli, ["fetch", "http://example.test/data"])
        assert result.exit_code == 1
        assert "Error:" in result.output
