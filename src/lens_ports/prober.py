"""Port availability probing.

A probe tries to bind a throwaway listening socket and closes it at once.
Every outcome is classified into a ``ProbeResult``; callers collapse
anything other than ``FREE`` to "in use".
"""

import asyncio
import errno
import logging
import os
import socket
from abc import ABC, abstractmethod
from enum import Enum

logger = logging.getLogger("lens_ports.prober")

DEFAULT_PROBE_TIMEOUT = 0.5  # seconds
DEFAULT_HOST = "localhost"
IPV4_LOOPBACK = "127.0.0.1"
IPV6_LOOPBACK = "::1"

_BUSY_ERRNOS = {errno.EADDRINUSE, errno.EACCES, errno.EPERM}
_UNSUPPORTED_ERRNOS = {errno.EAFNOSUPPORT, errno.EADDRNOTAVAIL, errno.EPROTONOSUPPORT}
_UNSUPPORTED_GAI_ERRORS = {
    code for code in (
        getattr(socket, "EAI_ADDRFAMILY", None),
        getattr(socket, "EAI_FAMILY", None),
    )
    if code is not None
}


class ProbeResult(str, Enum):
    """Outcome of a single bind probe."""

    FREE = "free"                    # Bind succeeded
    BUSY = "busy"                    # Address in use or permission denied
    INDETERMINATE = "indeterminate"  # Timeout or unexpected error
    UNSUPPORTED = "unsupported"      # Address family or address not present on host

    @property
    def in_use(self) -> bool:
        """Fail-closed view: only a successful bind counts as free."""
        return self is not ProbeResult.FREE


def classify_bind_error(error: OSError) -> ProbeResult:
    """Map a socket error raised while probing to a ``ProbeResult``."""
    if isinstance(error, socket.gaierror):
        if error.errno in _UNSUPPORTED_GAI_ERRORS:
            return ProbeResult.UNSUPPORTED
        return ProbeResult.INDETERMINATE
    if error.errno in _BUSY_ERRNOS:
        return ProbeResult.BUSY
    if error.errno in _UNSUPPORTED_ERRNOS:
        return ProbeResult.UNSUPPORTED
    return ProbeResult.INDETERMINATE


class Prober(ABC):
    """Interface for something that can tell whether a port can be bound."""

    @abstractmethod
    async def probe(self, port: int, host: str = DEFAULT_HOST) -> ProbeResult:
        """Probe ``host:port`` and classify the outcome.

        Implementations must not raise.
        """
        pass

    async def check_port_in_use(self, port: int, host: str = DEFAULT_HOST) -> bool:
        """Check whether ``host:port`` is in use.

        Args:
            port: Port number to check
            host: Host name or address to bind on

        Returns:
            True unless a bind on the port succeeded
        """
        result = await self.probe(port, host)
        return result.in_use


class SocketProber(Prober):
    """Probes ports by binding real OS sockets in a worker thread."""

    def __init__(self, timeout: float = DEFAULT_PROBE_TIMEOUT):
        """Initialize the prober.

        Args:
            timeout: Seconds before an unfinished probe counts as indeterminate
        """
        self.timeout = timeout

    async def probe(self, port: int, host: str = DEFAULT_HOST) -> ProbeResult:
        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(self._bind_probe, host, port),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.debug(f"Probe of {host}:{port} timed out after {self.timeout}s")
            return ProbeResult.INDETERMINATE
        except Exception as e:
            logger.debug(f"Probe of {host}:{port} failed: {e!r}")
            return ProbeResult.INDETERMINATE

        logger.debug(f"Probe of {host}:{port}: {result.value}")
        return result

    @staticmethod
    def _bind_probe(host: str, port: int) -> ProbeResult:
        """Bind and immediately close a listener on ``host:port``."""
        try:
            infos = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)
        except OSError as e:
            return classify_bind_error(e)
        if not infos:
            return ProbeResult.INDETERMINATE

        family, socktype, proto, _, sockaddr = infos[0]
        try:
            with socket.socket(family, socktype, proto) as s:
                # On Windows SO_REUSEADDR would let us bind over a live listener
                if os.name != "nt":
                    s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                s.bind(sockaddr)
                s.listen(1)
            return ProbeResult.FREE
        except OSError as e:
            return classify_bind_error(e)
