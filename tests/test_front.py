"""
Tests for the typed cache fronts.
"""

import threading

import pytest

from atomcache.core.exceptions import FetchFailed, ParseFailed
from atomcache.core.keys import SimpleKeyAggregator, build_url
from atomcache.core.models import Atom, FetchDescriptor, Source
from atomcache.fetch.coordinator import FetchCoordinator
from atomcache.front import CachedMap, CachedValue, FunctionParser, Parser

from conftest import CountingSource


def city_aggregator() -> SimpleKeyAggregator:
    return SimpleKeyAggregator(
        lambda city: FetchDescriptor(build_url("http://weather", "now", {"q": city}))
    )


class CountingParser(Parser):
    """Parser counting how often it runs."""

    def __init__(self):
        self.calls = 0

    def parse(self, params, stream):
        self.calls += 1
        return {"city": params, "text": stream.read().decode()}


@pytest.fixture
def coordinator(file_store, source, clock):
    """Create a coordinator over a file store."""
    with FetchCoordinator(file_store, source, clock=clock) as coordinator:
        yield coordinator


@pytest.fixture
def weather(coordinator) -> CachedMap:
    """Create a map front with a counting parser."""
    return CachedMap(coordinator, city_aggregator(), CountingParser())


class TestCachedMap:
    """Tests for the map-of-values front."""

    def test_get_parses_fetched_content(self, weather, source):
        """Test a first read."""
        value = weather.get("Paris")
        assert value == {"city": "Paris", "text": "payload 1"}
        assert source.descriptors[0].url == "http://weather/now?q=Paris"

    def test_memory_hit_skips_store_and_parser(self, weather, source, file_store):
        """Test that fresh in-memory values are served directly."""
        weather.get("Paris")
        file_store.clear()

        info = weather.get_info("Paris")

        assert info.source == Source.MEMORY
        assert info.value["text"] == "payload 1"
        assert weather.parser.calls == 1
        assert source.fetch_count == 1

    def test_one_entry_per_key(self, weather):
        """Test that the map keeps every key."""
        weather.get("Paris")
        weather.get("Rome")
        assert len(weather) == 2
        assert weather.get_memory_value("Paris")["text"] == "payload 1"
        assert weather.get_memory_value("Rome")["text"] == "payload 2"

    def test_same_atom_not_reparsed(self, weather, clock):
        """Test that an unchanged atom reuses the in-memory value."""
        weather.get("Paris")
        clock.advance(2000)

        info = weather.get_info("Paris", max_age_ms=1000)

        # Stale in memory and in the store, no callback: the stored atom is served
        assert info.source == Source.STORE
        assert weather.parser.calls == 1

    def test_new_atom_reparsed(self, weather):
        """Test that a fresh fetch replaces the in-memory value."""
        weather.get("Paris")
        value = weather.get("Paris", use_cache=False)

        assert value["text"] == "payload 2"
        assert weather.parser.calls == 2
        assert weather.get_memory_value("Paris")["text"] == "payload 2"

    def test_store_hit_after_memory_cleared(self, weather, source):
        """Test that the store serves values the memory forgot."""
        weather.get("Paris")
        weather.clear_memory()

        info = weather.get_info("Paris")

        assert info.source == Source.STORE
        assert info.value["text"] == "payload 1"
        assert source.fetch_count == 1
        assert weather.parser.calls == 2

    def test_invalidate(self, weather):
        """Test forgetting one key."""
        weather.get("Paris")
        weather.get("Rome")
        weather.invalidate("Paris")

        assert weather.get_memory_value("Paris") is None
        assert weather.get_memory_value("Rome") is not None

    def test_set_value(self, weather, source):
        """Test seeding the memory layer."""
        weather.set_value("Oslo", {"city": "Oslo", "text": "seeded"})

        assert weather.get("Oslo")["text"] == "seeded"
        assert source.fetch_count == 0

    def test_get_memory_value_without_io(self, weather, source):
        """Test that memory lookups never fetch."""
        assert weather.get_memory_value("Paris") is None
        assert source.fetch_count == 0

    def test_fetch_failure_propagates(self, weather, source):
        """Test that fetch failures reach the caller."""
        source.fail = True
        with pytest.raises(FetchFailed):
            weather.get("Paris")

    def test_remove_deletes_store_and_memory(self, weather, source, file_store):
        """Test that remove forgets the persisted atom as well."""
        weather.get("Paris")
        weather.get("Rome")

        weather.remove("Paris")

        assert weather.get_memory_value("Paris") is None
        assert file_store.read_atom("http://weather/now?q=Paris") is None
        assert file_store.read_atom("http://weather/now?q=Rome") is not None
        assert weather.get("Paris")["text"] == "payload 3"
        assert source.fetch_count == 3

    def test_remove_absent_key(self, weather, source):
        """Test removing parameters that were never fetched."""
        weather.remove("Paris")
        assert source.fetch_count == 0

    def test_older_atom_keeps_newer_memory_value(self, weather, clock):
        """Test that serving an older persisted atom leaves a newer value in memory."""
        weather.get("Paris")
        clock.advance(10)
        weather.set_value("Paris", {"city": "Paris", "text": "seeded"})
        clock.advance(5)

        info = weather.get_info("Paris", max_age_ms=1)

        assert info.source == Source.STORE
        assert info.value["text"] == "payload 1"
        assert weather.get_memory_value("Paris")["text"] == "seeded"


class TestCachedOnly:
    """Tests for reads served only from memory or the store."""

    def test_absent_returns_none(self, weather, source):
        """Test that nothing cached means None and no fetch."""
        assert weather.get_cached("Paris") is None
        assert weather.get_cached_info("Paris", from_memory=False) is None
        assert source.fetch_count == 0

    def test_from_memory(self, weather, source, file_store):
        """Test that the in-memory value is served first."""
        weather.get("Paris")
        file_store.clear()

        info = weather.get_cached_info("Paris")

        assert info.source == Source.MEMORY
        assert info.value["text"] == "payload 1"
        assert source.fetch_count == 1

    def test_from_store_after_memory_cleared(self, weather, source):
        """Test that the persisted atom is parsed and kept in memory."""
        weather.get("Paris")
        weather.clear_memory()

        info = weather.get_cached_info("Paris")

        assert info.source == Source.STORE
        assert info.value["text"] == "payload 1"
        assert weather.get_memory_value("Paris")["text"] == "payload 1"
        assert source.fetch_count == 1

    def test_skip_memory(self, weather, clock):
        """Test that from_memory=False reads the store even with a memory value."""
        weather.get("Paris")
        clock.advance(10)
        weather.set_value("Paris", {"city": "Paris", "text": "seeded"})

        assert weather.get_cached("Paris")["text"] == "seeded"
        assert weather.get_cached("Paris", from_memory=False)["text"] == "payload 1"
        assert weather.get_memory_value("Paris")["text"] == "seeded"

    def test_stale_values_are_served(self, weather, source, clock):
        """Test that freshness is not checked."""
        weather.get("Paris")
        clock.advance(10 * 24 * 3600 * 1000)
        weather.clear_memory()

        assert weather.get_cached("Paris")["text"] == "payload 1"
        assert source.fetch_count == 1

    def test_parse_failure(self, file_store, clock, text_parser):
        """Test that malformed persisted content raises ParseFailed."""
        source = CountingSource()
        with FetchCoordinator(file_store, source, clock=clock) as coordinator:
            front = CachedMap(coordinator, city_aggregator(), text_parser)
            file_store.write_atom("http://weather/now?q=Paris", Atom(clock.now, b"!oops"))

            with pytest.raises(ParseFailed):
                front.get_cached("Paris")
        assert source.fetch_count == 0


class TestParsing:
    """Tests for parse failures."""

    def test_parse_failure_keeps_persisted_bytes(self, file_store, clock, text_parser):
        """Test that malformed content raises ParseFailed but stays stored."""
        source = CountingSource({"http://weather/now?q=Paris": b"!oops"})
        with FetchCoordinator(file_store, source, clock=clock) as coordinator:
            front = CachedMap(coordinator, city_aggregator(), text_parser)

            with pytest.raises(ParseFailed) as exc_info:
                front.get("Paris")

        assert "malformed payload" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, ValueError)
        assert file_store.read_atom("http://weather/now?q=Paris").content == b"!oops"
        assert front.get_memory_value("Paris") is None

    def test_parse_failed_not_rewrapped(self, coordinator):
        """Test that ParseFailed raised by a parser passes through."""
        error = ParseFailed("key", "bad header")

        def parse(params, stream):
            raise error

        front = CachedValue(coordinator, city_aggregator(), FunctionParser(parse))
        with pytest.raises(ParseFailed) as exc_info:
            front.get("Paris")
        assert exc_info.value is error


class TestCachedValue:
    """Tests for the single-value front."""

    def test_keeps_only_latest_value(self, coordinator, text_parser):
        """Test the single memory slot."""
        front = CachedValue(coordinator, city_aggregator(), text_parser)
        front.get("Paris")
        front.get("Rome")

        assert front.get_memory_value("Paris") is None
        assert front.get_memory_value("Rome") == "payload 2"

    def test_memory_hit(self, coordinator, source, text_parser):
        """Test serving the slot while fresh."""
        front = CachedValue(coordinator, city_aggregator(), text_parser)
        front.get("Paris")

        assert front.get_info("Paris").source == Source.MEMORY
        assert source.fetch_count == 1

    def test_from_store(self, file_store, source, text_parser):
        """Test the convenience constructor."""
        with CachedValue.from_store(file_store, source, city_aggregator(), text_parser) as front:
            assert front.get("Paris") == "payload 1"
            assert isinstance(front.coordinator, FetchCoordinator)
        assert front.coordinator.closed

    def test_close_leaves_shared_coordinator_running(self, coordinator, text_parser):
        """Test that a front does not shut down a coordinator it was given."""
        front = CachedValue(coordinator, city_aggregator(), text_parser)
        front.close()
        assert not coordinator.closed


class TestRefresh:
    """Tests for background refreshes through a front."""

    def test_refresh_delivers_parsed_value(self, weather, source, clock):
        """Test that on_refreshed receives the parsed refreshed value."""
        weather.get("Paris")
        clock.advance(5000)
        outcomes = []
        done = threading.Event()

        def on_refreshed(outcome):
            outcomes.append(outcome)
            done.set()

        stale = weather.get("Paris", max_age_ms=1000, on_refreshed=on_refreshed)

        assert stale["text"] == "payload 1"
        assert done.wait(5)
        assert outcomes[0].ok
        assert outcomes[0].value["text"] == "payload 2"
        assert weather.get_memory_value("Paris")["text"] == "payload 2"
        assert source.fetch_count == 2

    def test_refresh_parse_failure_reaches_callback(self, file_store, clock, text_parser):
        """Test that a refreshed payload failing to parse is reported as an error."""
        source = CountingSource()
        with FetchCoordinator(file_store, source, clock=clock) as coordinator:
            front = CachedMap(coordinator, city_aggregator(), text_parser)
            front.get("Paris")
            clock.advance(5000)
            source.responses["http://weather/now?q=Paris"] = b"!broken"
            outcomes = []
            done = threading.Event()

            def on_refreshed(outcome):
                outcomes.append(outcome)
                done.set()

            assert front.get("Paris", max_age_ms=1000, on_refreshed=on_refreshed) == "payload 1"
            assert done.wait(5)

        assert isinstance(outcomes[0].error, ParseFailed)
        assert front.get_memory_value("Paris") == "payload 1"

    def test_no_callback_no_refresh(self, weather, source, clock):
        """Test that stale values are served without refetching."""
        weather.get("Paris")
        clock.advance(5000)

        assert weather.get("Paris", max_age_ms=1000)["text"] == "payload 1"
        weather.coordinator.shutdown()
        assert source.fetch_count == 1
