"""Port allocation for frontend/backend server pairs.

Finds ports that are neither bound by another process nor already claimed
by an earlier allocation in this process, and resolves conflicting
requests into an adjacent replacement pair.
"""

import asyncio
import logging
import random
import socket
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .cache import ProbeCache
from .config import COMMON_PORTS, PORT_MAX, SAFE_PORT_MIN, Settings, get_settings
from .configuration import build_configuration
from .errors import ErrorCategory, InvalidPortError, PortExhaustedError, log_and_format_error
from .models import (
    CLIOptions,
    HealthReport,
    PortConfiguration,
    PortRangeStats,
    RequestedPorts,
    UsageStats,
)
from .prober import IPV4_LOOPBACK, IPV6_LOOPBACK, Prober, ProbeResult, SocketProber
from .validation import is_privileged_port, is_valid_port

logger = logging.getLogger("lens_ports.allocator")

# Batch size and concurrency used when collecting several free ports
MULTI_PORT_BATCH_SIZE = 50
MULTI_PORT_CONCURRENCY = 5


class PortAllocator:
    """Allocates collision-free port pairs for concurrently running servers.

    All state is owned by the instance: the set of claimed ports and the
    probe cache. A claimed port is unavailable regardless of what a live
    probe reports, which keeps back-to-back allocations from handing out
    the same port before the caller has bound its listener.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        prober: Optional[Prober] = None,
        cache: Optional[ProbeCache] = None,
        rng: Optional[random.Random] = None,
    ):
        """Initialize port allocator.

        Args:
            settings: Allocator settings (defaults to environment settings)
            prober: Availability prober (defaults to real socket binds)
            cache: Probe cache (defaults to one using ``settings.cache_ttl``)
            rng: Random source for random port selection
        """
        self.settings = settings or get_settings()
        self.prober = prober or SocketProber(timeout=self.settings.probe_timeout)
        self.cache = cache if cache is not None else ProbeCache(ttl=self.settings.cache_ttl)
        self.used_ports: Set[int] = set()
        self._rng = rng or random.Random()
        # Guards check-then-claim sequences; every await may yield to another task
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    async def is_port_available(self, port: int, host: Optional[str] = None) -> bool:
        """Check if a port can be handed out.

        Invalid, privileged and claimed ports are rejected without touching
        the network. Without an explicit host both loopback addresses are
        probed and the combined result is cached.

        Args:
            port: Port number to check
            host: Probe only this host instead of IPv4 and IPv6 loopback

        Returns:
            True if the port is free and unclaimed
        """
        if not is_valid_port(port):
            return False

        if is_privileged_port(port):
            return False

        if port in self.used_ports:
            return False

        if host is not None:
            result = await self.prober.probe(port, host)
            return not result.in_use

        cached = self.cache.get(port)
        if cached is not None:
            return cached

        result = await self._probe_loopback(port)
        if result is not ProbeResult.INDETERMINATE:
            self.cache.set(port, not result.in_use)

        return not result.in_use

    async def _probe_loopback(self, port: int) -> ProbeResult:
        """Probe IPv4 and IPv6 loopback; both must be free."""
        ipv4 = await self.prober.probe(port, IPV4_LOOPBACK)
        if ipv4 is not ProbeResult.FREE:
            return ipv4

        if not socket.has_ipv6:
            return ProbeResult.FREE

        ipv6 = await self.prober.probe(port, IPV6_LOOPBACK)
        if ipv6 is ProbeResult.FREE or ipv6 is ProbeResult.UNSUPPORTED:
            return ProbeResult.FREE

        if ipv6 is ProbeResult.INDETERMINATE and self.settings.ipv6_policy == "lenient":
            logger.debug(f"Ignoring indeterminate IPv6 probe for port {port}")
            return ProbeResult.FREE

        return ipv6

    # ------------------------------------------------------------------
    # Single port search
    # ------------------------------------------------------------------

    async def find_available_port(self, start_port: int) -> int:
        """Find the first available port at or after ``start_port``.

        Ports below 1024, commonly used development ports and claimed
        ports are skipped. Only probed ports count against the retry budget.

        Args:
            start_port: Port to start searching from

        Returns:
            Available port number

        Raises:
            InvalidPortError: If start_port is not a valid port
            PortExhaustedError: If the budget runs out first
        """
        if not is_valid_port(start_port):
            raise InvalidPortError(start_port)

        port = max(start_port, SAFE_PORT_MIN)
        attempts = 0

        while port <= PORT_MAX and attempts < self.settings.max_retries:
            if port in COMMON_PORTS or port in self.used_ports:
                port += 1
                continue

            attempts += 1
            if await self.is_port_available(port):
                return port
            port += 1

        raise PortExhaustedError(start_port, attempts)

    async def _find_port_after(self, port: int) -> int:
        """Find an available port strictly above ``port``."""
        if port >= PORT_MAX:
            raise PortExhaustedError(port, 0)
        return await self.find_available_port(port + 1)

    async def try_random(
        self,
        min_port: int,
        max_port: int,
        attempts: Optional[int] = None,
    ) -> Optional[int]:
        """Draw random candidates in ``[min_port, max_port]``.

        Returns:
            The first candidate that probes available, or None
        """
        if attempts is None:
            attempts = self.settings.random_attempts

        for _ in range(attempts):
            candidate = self._rng.randint(min_port, max_port)
            if await self.is_port_available(candidate):
                return candidate
        return None

    async def try_scan(self, start_port: int) -> int:
        """Sequential fallback used after random selection gives up."""
        return await self.find_available_port(start_port)

    async def get_random_available_port(
        self,
        min_port: Optional[int] = None,
        max_port: int = PORT_MAX,
    ) -> int:
        """Get a random available port, falling back to a sequential scan.

        Args:
            min_port: Lowest candidate (defaults to ``settings.random_min``)
            max_port: Highest candidate

        Returns:
            Available port number

        Raises:
            InvalidPortError: If the range is invalid
            PortExhaustedError: If the fallback scan also fails
        """
        if min_port is None:
            min_port = self.settings.random_min

        for bound in (min_port, max_port):
            if not is_valid_port(bound):
                raise InvalidPortError(bound)
        if min_port > max_port:
            raise InvalidPortError(min_port, f"range start exceeds range end {max_port}")

        port = await self.try_random(min_port, max_port)
        if port is not None:
            return port

        logger.debug(
            f"No random port found in {min_port}-{max_port}, scanning from {min_port}"
        )
        return await self.try_scan(min_port)

    async def find_available_port_in_range(self, start_port: int, end_port: int) -> Optional[int]:
        """Find the first available port in ``[start_port, end_port]``.

        Unlike ``find_available_port`` this does not skip common ports and
        returns None instead of raising.
        """
        for port in range(start_port, end_port + 1):
            if await self.is_port_available(port):
                return port
        return None

    # ------------------------------------------------------------------
    # Pair detection
    # ------------------------------------------------------------------

    async def detect_ports(self, options: Optional[CLIOptions] = None) -> PortConfiguration:
        """Resolve caller options into a claimed frontend/backend pair.

        Both returned ports are claimed before this returns. If an explicit
        request conflicts, a replacement pair is searched starting just
        past the requested frontend, with the backend right after the new
        frontend, and the original request is recorded in
        ``requested_ports``.

        Args:
            options: Parsed caller options (defaults to a fully automatic request)

        Returns:
            Resolved port configuration

        Raises:
            PortExhaustedError: If no replacement port can be found
        """
        if options is None:
            options = CLIOptions()

        async with self._lock:
            return await self._detect_ports(options)

    async def _detect_ports(self, options: CLIOptions) -> PortConfiguration:
        candidate = build_configuration(options)

        if not options.has_explicit_ports:
            # Keep room for backend = frontend + 1
            frontend = await self.get_random_available_port(max_port=PORT_MAX - 1)
            backend = await self._find_port_after(frontend)
            self._claim(frontend, backend)
            logger.debug(f"Auto-selected ports {frontend}/{backend}")
            return PortConfiguration(frontend=frontend, backend=backend, auto_detected=True)

        frontend_available = await self.is_port_available(candidate.frontend)
        backend_available = await self.is_port_available(candidate.backend)

        if frontend_available and backend_available:
            self._claim(candidate.frontend, candidate.backend)
            logger.debug(f"Using requested ports {candidate.frontend}/{candidate.backend}")
            return candidate

        frontend = await self._find_port_after(candidate.frontend)
        backend = await self._find_port_after(frontend)
        self._claim(frontend, backend)

        requested = RequestedPorts(
            frontend=candidate.frontend,
            backend=candidate.backend if options.has_explicit_pair else None,
        )
        logger.warning(
            f"Requested ports {candidate.frontend}/{candidate.backend} unavailable, "
            f"using {frontend}/{backend} instead"
        )

        return PortConfiguration(
            frontend=frontend,
            backend=backend,
            auto_detected=True,
            requested_ports=requested,
        )

    async def detect_multiple_ports(
        self, options_list: Iterable[CLIOptions]
    ) -> List[PortConfiguration]:
        """Resolve several requests in order.

        The lock is held for the whole batch, so no other allocation can
        interleave. Each result is claimed before the next is resolved,
        which keeps every port across the batch distinct.
        """
        results: List[PortConfiguration] = []
        async with self._lock:
            for options in options_list:
                results.append(await self._detect_ports(options))
        return results

    # ------------------------------------------------------------------
    # Claimed-port registry
    # ------------------------------------------------------------------

    def _claim(self, *ports: int) -> None:
        for port in ports:
            self.mark_port_as_used(port)

    def mark_port_as_used(self, port: int) -> None:
        """Claim a port for this process.

        Args:
            port: Port to mark as used
        """
        self.used_ports.add(port)
        self.cache.set(port, False)
        logger.debug(f"Claimed port {port}")

    def release_port(self, port: int) -> None:
        """Release a claimed port and forget its cached probe result.

        Args:
            port: Port to release
        """
        self.used_ports.discard(port)
        self.cache.clear(port)
        logger.debug(f"Released port {port}")

    def clear_cache(self, port: Optional[int] = None) -> None:
        """Clear the cached result for one port, or all of them."""
        self.cache.clear(port)

    def reset(self) -> None:
        """Release every claimed port and empty the cache."""
        self.used_ports.clear()
        self.cache.clear()

    # ------------------------------------------------------------------
    # Batch checks and diagnostics
    # ------------------------------------------------------------------

    async def check_multiple_ports_availability(
        self,
        ports: Iterable[int],
        concurrency: Optional[int] = None,
    ) -> Dict[int, bool]:
        """Check many ports with at most ``concurrency`` probes in flight.

        Args:
            ports: Ports to check
            concurrency: Maximum concurrent checks (defaults to ``settings.batch_concurrency``)

        Returns:
            Mapping of port to availability, in input order
        """
        if concurrency is None:
            concurrency = self.settings.batch_concurrency
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")

        semaphore = asyncio.Semaphore(concurrency)

        async def check(port: int) -> Tuple[int, bool]:
            async with semaphore:
                return port, await self.is_port_available(port)

        results = await asyncio.gather(*(check(port) for port in ports))
        return dict(results)

    def _validate_range(self, start_port: int, end_port: int) -> None:
        for bound in (start_port, end_port):
            if not is_valid_port(bound):
                raise InvalidPortError(bound)
        if start_port > end_port:
            raise InvalidPortError(start_port, f"range start exceeds range end {end_port}")

    async def find_multiple_available_ports(
        self,
        start_port: int,
        end_port: int,
        count: int,
    ) -> List[int]:
        """Collect up to ``count`` available ports from a range, lowest first.

        Returns:
            Available ports found (may be fewer than ``count``)
        """
        self._validate_range(start_port, end_port)

        available: List[int] = []
        batch_size = min(MULTI_PORT_BATCH_SIZE, end_port - start_port + 1)

        current = start_port
        while current <= end_port and len(available) < count:
            batch_end = min(current + batch_size - 1, end_port)
            batch = list(range(current, batch_end + 1))
            availability = await self.check_multiple_ports_availability(
                batch, MULTI_PORT_CONCURRENCY
            )
            for port in batch:
                if availability[port]:
                    available.append(port)
                    if len(available) >= count:
                        break
            current += batch_size

        return available

    async def get_port_usage_stats(self, start_port: int, end_port: int) -> PortRangeStats:
        """Summarize availability over ``[start_port, end_port]``."""
        self._validate_range(start_port, end_port)

        ports = list(range(start_port, end_port + 1))
        availability = await self.check_multiple_ports_availability(ports)
        available_ports = [port for port in ports if availability[port]]

        return PortRangeStats(
            total=len(ports),
            available=len(available_ports),
            used=len(ports) - len(available_ports),
            available_ports=available_ports,
        )

    def get_usage_stats(self) -> UsageStats:
        """Get claimed-port and cache statistics, after pruning expired entries."""
        self.cache.prune()
        return UsageStats(
            used_ports_count=len(self.used_ports),
            cache_size=len(self.cache),
            used_ports=sorted(self.used_ports),
        )

    async def health_check(self) -> HealthReport:
        """Check that probing works and internal state looks sane."""
        issues: List[str] = []
        stats = self.get_usage_stats()

        test_port_available = False
        try:
            test_port_available = await self.is_port_available(self.settings.health_test_port)
        except Exception as e:
            issues.append(
                log_and_format_error(
                    "health_check",
                    e,
                    category=ErrorCategory.PROBE,
                    user_message="Port probing is not working",
                    port=self.settings.health_test_port,
                )
            )

        if stats.used_ports_count > self.settings.health_max_used_ports:
            issues.append(f"Unusually many claimed ports: {stats.used_ports_count}")

        if stats.cache_size > self.settings.health_max_cache_size:
            issues.append(f"Probe cache is unusually large: {stats.cache_size}")

        return HealthReport(
            is_healthy=not issues,
            issues=issues,
            used_ports_count=stats.used_ports_count,
            cache_size=stats.cache_size,
            test_port_available=test_port_available,
        )
