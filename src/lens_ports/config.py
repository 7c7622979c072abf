"""Configuration management for lens-ports."""

import os
import re
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Port number limits
PORT_MIN = 1
PORT_MAX = 65535
SAFE_PORT_MIN = 1024  # Below this ports are privileged
RANDOM_PORT_MIN = 8000

# Placeholder pair used when nothing was requested
DEFAULT_FRONTEND_PORT = 3000
DEFAULT_BACKEND_PORT = 3001

# Ports commonly taken by local development tools and databases
COMMON_PORTS = frozenset({
    3000, 3001, 3002, 3003,  # dev servers
    8000, 8001, 8080, 8081,  # HTTP alternates
    9000, 9001, 9090, 9091,  # misc dev tooling
    5000, 5001, 5432, 5984,  # databases etc.
})


class Settings(BaseSettings):
    """Allocator settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="LENS_PORTS_",
        extra="ignore",
    )

    probe_timeout: float = Field(
        default=0.5,
        gt=0,
        description="Seconds before a single bind probe is treated as in use",
    )
    cache_ttl: float = Field(
        default=5.0,
        ge=0,
        description="Seconds a probe result stays valid in the cache",
    )
    max_retries: int = Field(
        default=100,
        ge=1,
        description="Ports tried by a sequential search before giving up",
    )
    random_min: int = Field(
        default=RANDOM_PORT_MIN,
        ge=SAFE_PORT_MIN,
        le=PORT_MAX,
        description="Lower bound for random port selection",
    )
    random_attempts: int = Field(
        default=10,
        ge=0,
        description="Random candidates drawn before falling back to a scan",
    )
    batch_concurrency: int = Field(
        default=10,
        ge=1,
        description="Maximum probes in flight during batch checks",
    )
    health_test_port: int = Field(
        default=65432,
        ge=SAFE_PORT_MIN,
        le=PORT_MAX,
        description="Port probed by the health check",
    )
    health_max_used_ports: int = Field(
        default=1000,
        description="Claimed port count above which the allocator reports unhealthy",
    )
    health_max_cache_size: int = Field(
        default=10000,
        description="Cache size above which the allocator reports unhealthy",
    )
    ipv6_policy: Literal["strict", "lenient"] = Field(
        default="strict",
        description="'strict' ignores IPv6 probe failures only when IPv6 is absent; "
        "'lenient' ignores every IPv6 probe failure",
    )
    log_file: Optional[str] = Field(
        default=None,
        description="Optional path for the JSON error log",
    )


def get_settings() -> Settings:
    """Get allocator settings, loading from environment."""
    return Settings()


def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand ${VAR} references in a loaded YAML document."""
    if isinstance(obj, str):
        pattern = r'\$\{([^}]+)\}'

        def replacer(match: re.Match[str]) -> str:
            var_name = match.group(1)
            return os.environ.get(var_name, match.group(0))

        return re.sub(pattern, replacer, obj)

    elif isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}

    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]

    return obj


def load_settings_file(config_path: str) -> Settings:
    """Load settings from a YAML file.

    Values from the file take precedence over environment variables.

    Args:
        config_path: Path to configuration file

    Returns:
        Settings instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If the file is not valid YAML or not a mapping
        pydantic.ValidationError: If a value is out of range
    """
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_file, 'r') as f:
        try:
            raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(raw_config, dict):
        raise ValueError(f"Configuration file must contain a mapping: {config_path}")

    # Accept both a flat mapping and one nested under "ports:"
    section = raw_config.get("ports", raw_config)

    return Settings(**_expand_env_vars(section))
