"""Build a candidate port pair from caller options without any I/O."""

from .config import DEFAULT_BACKEND_PORT, DEFAULT_FRONTEND_PORT
from .models import CLIOptions, PortConfiguration


def build_configuration(options: CLIOptions) -> PortConfiguration:
    """Derive the candidate configuration a request asks for.

    Precedence: an explicit frontend/backend pair, then a single base port,
    then a placeholder pair flagged ``auto_detected`` which the allocator
    replaces with probed ports.

    Args:
        options: Parsed caller options

    Returns:
        Candidate port configuration
    """
    if options.has_explicit_pair:
        return PortConfiguration(
            frontend=options.frontend_port,
            backend=options.backend_port,
            auto_detected=False,
        )

    base = options.base_port
    if base is not None:
        return PortConfiguration(
            frontend=base,
            backend=base + 1,
            auto_detected=False,
        )

    return PortConfiguration(
        frontend=DEFAULT_FRONTEND_PORT,
        backend=DEFAULT_BACKEND_PORT,
        auto_detected=True,
    )
