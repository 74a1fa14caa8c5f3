from __future__ import annotations


class GateError(Exception):
    """Base class for docsgate errors."""


class ConfigError(GateError):
    """Route configuration is invalid; the gateway must not start with it."""


class UnknownServiceError(GateError):
    """No backend is registered for the resolved service name."""

    def __init__(self, service_name: str | None):
        self.service_name = service_name
        super().__init__(f"no backend for service {service_name!r}")


class DispatchError(GateError):
    """Transport failure while forwarding to a backend."""

    def __init__(self, service_name: str, cause: Exception):
        self.service_name = service_name
        self.cause = cause
        super().__init__(f"dispatch to {service_name!r} failed: {cause.__class__.__name__}")


__all__ = ["GateError", "ConfigError", "UnknownServiceError", "DispatchError"]
