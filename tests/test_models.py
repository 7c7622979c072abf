"""Tests for models, validation and configuration building."""

from types import SimpleNamespace

import pytest
from pydantic import ValidationError

from lens_ports.configuration import build_configuration
from lens_ports.models import CLIOptions, PortConfiguration, RequestedPorts
from lens_ports.validation import (
    is_privileged_port,
    is_valid_port,
    validate_port_configuration,
)


class TestIsValidPort:
    """Tests for the port predicate."""

    @pytest.mark.parametrize("port", [1, 80, 1024, 3000, 65535])
    def test_valid(self, port):
        assert is_valid_port(port) is True

    @pytest.mark.parametrize("port", [-1, 0, 65536, 1.5, 3000.0, "3000", None, True])
    def test_invalid(self, port):
        assert is_valid_port(port) is False

    def test_repeatable(self):
        assert all(is_valid_port(3000) for _ in range(5))

    def test_privileged(self):
        assert is_privileged_port(80) is True
        assert is_privileged_port(1023) is True
        assert is_privileged_port(1024) is False


class TestValidatePortConfiguration:
    """Tests for validate_port_configuration."""

    def test_valid_configuration(self):
        is_valid, errors = validate_port_configuration(PortConfiguration(3000, 3001))
        assert is_valid is True
        assert errors == []

    def test_out_of_range(self):
        is_valid, errors = validate_port_configuration(PortConfiguration(0, 70000))
        assert is_valid is False
        assert len(errors) == 2

    def test_same_port(self):
        is_valid, errors = validate_port_configuration(SimpleNamespace(frontend=3000, backend=3000))
        assert is_valid is False
        assert "same port" in errors[0]


class TestCLIOptions:
    """Tests for CLIOptions validation."""

    def test_defaults(self):
        options = CLIOptions()
        assert options.has_explicit_ports is False
        assert options.base_port is None

    @pytest.mark.parametrize("field", ["port", "frontend_port", "backend_port"])
    @pytest.mark.parametrize("value", [0, -1, 65536])
    def test_out_of_range(self, field, value):
        kwargs = {field: value}
        if field == "backend_port":
            kwargs["frontend_port"] = 4000
        with pytest.raises(ValidationError):
            CLIOptions(**kwargs)

    def test_same_frontend_and_backend(self):
        with pytest.raises(ValidationError) as exc_info:
            CLIOptions(frontend_port=4000, backend_port=4000)
        assert "must differ" in str(exc_info.value)

    def test_backend_without_frontend(self):
        with pytest.raises(ValidationError):
            CLIOptions(backend_port=4000)

    def test_port_at_top_of_range(self):
        """port+1 must still be a valid port."""
        with pytest.raises(ValidationError):
            CLIOptions(port=65535)

    def test_frozen(self):
        options = CLIOptions(port=3000)
        with pytest.raises(ValidationError):
            options.port = 4000


class TestBuildConfiguration:
    """Tests for build_configuration precedence."""

    def test_explicit_pair_wins(self):
        config = build_configuration(CLIOptions(port=3000, frontend_port=4000, backend_port=4100))
        assert (config.frontend, config.backend) == (4000, 4100)
        assert config.auto_detected is False

    def test_single_port(self):
        config = build_configuration(CLIOptions(port=3000))
        assert (config.frontend, config.backend) == (3000, 3001)
        assert config.auto_detected is False

    def test_lone_frontend_port_acts_as_base(self):
        config = build_configuration(CLIOptions(frontend_port=5000))
        assert (config.frontend, config.backend) == (5000, 5001)

    def test_nothing_requested(self):
        config = build_configuration(CLIOptions())
        assert config.auto_detected is True
        assert config.frontend != config.backend
        assert config.requested_ports is None


class TestPortConfiguration:
    """Tests for PortConfiguration."""

    def test_ports_must_differ(self):
        with pytest.raises(ValueError):
            PortConfiguration(3000, 3000)

    def test_urls(self):
        config = PortConfiguration(3000, 3001)
        assert config.frontend_url == "http://localhost:3000"
        assert config.backend_url == "http://localhost:3001"

    def test_to_dict_omits_request_when_absent(self):
        assert PortConfiguration(3000, 3001).to_dict() == {
            "frontend": 3000,
            "backend": 3001,
            "auto_detected": False,
        }

    def test_to_dict_with_request(self):
        config = PortConfiguration(
            3004, 3005, auto_detected=True, requested_ports=RequestedPorts(frontend=3000)
        )
        assert config.is_fallback is True
        assert config.to_dict()["requested_ports"] == {"frontend": 3000}
