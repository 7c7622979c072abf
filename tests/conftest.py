"""Test configuration for pytest."""

import asyncio
import random
import socket
from typing import Dict, Iterable, List, Optional, Tuple

import pytest

from lens_ports.cache import ProbeCache
from lens_ports.config import Settings
from lens_ports.port_allocator import PortAllocator
from lens_ports.prober import Prober, ProbeResult


class FakeProber(Prober):
    """Prober with scripted results that records every call.

    A port is FREE unless it is listed in ``busy``, or ``free`` is given and
    the port is not in it. ``results`` overrides both per (port, host).
    """

    def __init__(
        self,
        busy: Iterable[int] = (),
        free: Optional[Iterable[int]] = None,
        results: Optional[Dict[Tuple[int, str], ProbeResult]] = None,
        delay: float = 0.0,
    ):
        self.busy = set(busy)
        self.free = set(free) if free is not None else None
        self.results = dict(results or {})
        self.delay = delay
        self.calls: List[Tuple[int, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def probe(self, port: int, host: str = "localhost") -> ProbeResult:
        self.calls.append((port, host))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if (port, host) in self.results:
                return self.results[(port, host)]
            if port in self.busy:
                return ProbeResult.BUSY
            if self.free is not None and port not in self.free:
                return ProbeResult.BUSY
            return ProbeResult.FREE
        finally:
            self.in_flight -= 1

    def probed_ports(self) -> List[int]:
        return [port for port, _ in self.calls]


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def ipv6_enabled(monkeypatch):
    """Make dual-stack probing independent of the interpreter build."""
    monkeypatch.setattr(socket, "has_ipv6", True)


@pytest.fixture
def settings():
    """Settings with a small retry budget for fast exhaustion tests."""
    return Settings(max_retries=100, probe_timeout=0.2)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def make_allocator(settings, fake_clock):
    """Build an allocator around a FakeProber."""

    def factory(prober: Optional[Prober] = None, seed: int = 1234, **overrides) -> PortAllocator:
        allocator_settings = settings.model_copy(update=overrides) if overrides else settings
        return PortAllocator(
            settings=allocator_settings,
            prober=prober or FakeProber(),
            cache=ProbeCache(ttl=allocator_settings.cache_ttl, clock=fake_clock),
            rng=random.Random(seed),
        )

    return factory
