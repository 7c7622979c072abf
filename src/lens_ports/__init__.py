"""lens-ports - Collision-free frontend/backend port allocation for local dev servers."""

from .cache import ProbeCache
from .config import Settings, get_settings, load_settings_file
from .configuration import build_configuration
from .errors import InvalidPortError, PortError, PortExhaustedError
from .models import (
    CLIOptions,
    HealthReport,
    PortConfiguration,
    PortRangeStats,
    RequestedPorts,
    UsageStats,
)
from .port_allocator import PortAllocator
from .prober import Prober, ProbeResult, SocketProber
from .validation import is_privileged_port, is_valid_port, validate_port_configuration

__all__ = [
    "PortAllocator",
    "PortConfiguration",
    "RequestedPorts",
    "CLIOptions",
    "UsageStats",
    "PortRangeStats",
    "HealthReport",
    "ProbeCache",
    "Prober",
    "ProbeResult",
    "SocketProber",
    "Settings",
    "get_settings",
    "load_settings_file",
    "build_configuration",
    "PortError",
    "InvalidPortError",
    "PortExhaustedError",
    "is_valid_port",
    "is_privileged_port",
    "validate_port_configuration",
]
