"""Data models for port requests and allocation results."""

from dataclasses import asdict, dataclass, field
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .config import PORT_MAX, PORT_MIN


class CLIOptions(BaseModel):
    """Port-related options as parsed from the command line.

    Resolution precedence: an explicit frontend/backend pair, then a single
    base ``port`` (backend is ``port + 1``), then automatic selection.
    """

    model_config = ConfigDict(frozen=True)

    port: Optional[int] = Field(None, ge=PORT_MIN, le=PORT_MAX, description="Frontend port; backend is port+1")
    frontend_port: Optional[int] = Field(None, ge=PORT_MIN, le=PORT_MAX, description="Frontend port")
    backend_port: Optional[int] = Field(None, ge=PORT_MIN, le=PORT_MAX, description="Backend port")
    no_open: bool = Field(False, description="Don't open a browser automatically")
    verbose: bool = Field(False, description="Verbose logging")

    @model_validator(mode="after")
    def check_ports(self) -> "CLIOptions":
        """Reject pairs that can never be bound together."""
        if (
            self.frontend_port is not None
            and self.backend_port is not None
            and self.frontend_port == self.backend_port
        ):
            raise ValueError("frontend_port and backend_port must differ")
        if self.backend_port is not None and self.frontend_port is None:
            raise ValueError("backend_port requires frontend_port")
        base = self.base_port
        if base is not None and not self.has_explicit_pair and base >= PORT_MAX:
            raise ValueError(f"port must be below {PORT_MAX} so that port+1 is valid")
        return self

    @property
    def base_port(self) -> Optional[int]:
        """Port the backend is derived from when no full pair is given.

        A lone ``frontend_port`` behaves like ``port``.
        """
        if self.port is not None:
            return self.port
        return self.frontend_port

    @property
    def has_explicit_pair(self) -> bool:
        return self.frontend_port is not None and self.backend_port is not None

    @property
    def has_explicit_ports(self) -> bool:
        """True if any port was requested at all."""
        return (
            self.port is not None
            or self.frontend_port is not None
            or self.backend_port is not None
        )


@dataclass(frozen=True)
class RequestedPorts:
    """Ports the caller originally asked for, kept when a fallback occurred."""

    frontend: Optional[int] = None
    backend: Optional[int] = None


@dataclass(frozen=True)
class PortConfiguration:
    """A resolved frontend/backend port pair.

    The caller owns the result and is responsible for binding both
    listeners it describes.
    """

    frontend: int
    backend: int

    # True when either port differs from the request, or nothing was requested
    auto_detected: bool = False

    # Present only when a fallback replaced an explicit request
    requested_ports: Optional[RequestedPorts] = None

    def __post_init__(self) -> None:
        if self.frontend == self.backend:
            raise ValueError(f"Frontend and backend ports must differ (both {self.frontend})")

    @property
    def frontend_url(self) -> str:
        return f"http://localhost:{self.frontend}"

    @property
    def backend_url(self) -> str:
        return f"http://localhost:{self.backend}"

    @property
    def is_fallback(self) -> bool:
        """True if an explicit request was replaced by other ports."""
        return self.requested_ports is not None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dictionary, omitting absent request data."""
        data: dict[str, Any] = {
            "frontend": self.frontend,
            "backend": self.backend,
            "auto_detected": self.auto_detected,
        }
        if self.requested_ports is not None:
            data["requested_ports"] = {
                k: v for k, v in asdict(self.requested_ports).items() if v is not None
            }
        return data


@dataclass
class UsageStats:
    """Snapshot of the allocator's in-process state."""

    used_ports_count: int
    cache_size: int
    used_ports: List[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PortRangeStats:
    """Availability summary over a port range."""

    total: int
    available: int
    used: int
    available_ports: List[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class HealthReport:
    """Result of an allocator health check."""

    is_healthy: bool
    issues: List[str]
    used_ports_count: int
    cache_size: int
    test_port_available: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_healthy": self.is_healthy,
            "issues": list(self.issues),
            "stats": {
                "used_ports_count": self.used_ports_count,
                "cache_size": self.cache_size,
                "test_port_available": self.test_port_available,
            },
        }
