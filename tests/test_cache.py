"""Tests for ProbeCache."""

from conftest import FakeClock
from lens_ports.cache import ProbeCache


class TestProbeCache:
    """Tests for TTL handling."""

    def test_miss(self):
        cache = ProbeCache(clock=FakeClock())
        assert cache.get(4000) is None

    def test_hit_within_ttl(self):
        clock = FakeClock()
        cache = ProbeCache(ttl=5.0, clock=clock)

        cache.set(4000, True)
        cache.set(4001, False)
        clock.advance(4.9)

        assert cache.get(4000) is True
        assert cache.get(4001) is False

    def test_expired_entry_is_dropped(self):
        clock = FakeClock()
        cache = ProbeCache(ttl=5.0, clock=clock)

        cache.set(4000, True)
        clock.advance(5.0)

        assert cache.get(4000) is None
        assert len(cache) == 0

    def test_set_overwrites_and_refreshes(self):
        clock = FakeClock()
        cache = ProbeCache(ttl=5.0, clock=clock)

        cache.set(4000, True)
        clock.advance(4)
        cache.set(4000, False)
        clock.advance(4)

        assert cache.get(4000) is False

    def test_clear_single_and_all(self):
        cache = ProbeCache(clock=FakeClock())
        cache.set(4000, True)
        cache.set(4001, True)

        cache.clear(4000)
        assert 4000 not in cache
        assert 4001 in cache

        cache.clear()
        assert len(cache) == 0

    def test_clear_missing_port(self):
        cache = ProbeCache(clock=FakeClock())
        cache.clear(4000)  # Should not raise
        assert len(cache) == 0

    def test_prune(self):
        clock = FakeClock()
        cache = ProbeCache(ttl=5.0, clock=clock)
        cache.set(4000, True)
        clock.advance(6)
        cache.set(4001, True)

        assert cache.prune() == 1
        assert len(cache) == 1
