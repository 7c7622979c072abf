"""Port number validation helpers.

These checks are purely syntactic and perform no I/O. The privileged-port
floor is an allocation policy applied by the allocator, not here.
"""

from typing import Any, List, Tuple, TYPE_CHECKING

from .config import PORT_MAX, PORT_MIN, SAFE_PORT_MIN

if TYPE_CHECKING:
    from .models import PortConfiguration


def is_valid_port(port: Any) -> bool:
    """Check whether ``port`` is an integer in 1..65535.

    Booleans and floats are rejected even when they compare equal to an
    integer (``True``, ``3000.0``).
    """
    if isinstance(port, bool) or not isinstance(port, int):
        return False
    return PORT_MIN <= port <= PORT_MAX


def is_privileged_port(port: int) -> bool:
    """Check whether ``port`` falls below the unprivileged floor (1024)."""
    return port < SAFE_PORT_MIN


def validate_port_configuration(config: "PortConfiguration") -> Tuple[bool, List[str]]:
    """Validate a resolved port pair.

    Args:
        config: Port configuration to check

    Returns:
        Tuple of (is_valid, error_messages)
    """
    errors: List[str] = []

    if not is_valid_port(config.frontend):
        errors.append(f"Frontend port must be between {PORT_MIN} and {PORT_MAX}")

    if not is_valid_port(config.backend):
        errors.append(f"Backend port must be between {PORT_MIN} and {PORT_MAX}")

    if config.frontend == config.backend:
        errors.append("Frontend and backend cannot use the same port")

    return len(errors) == 0, errors
