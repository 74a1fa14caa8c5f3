from __future__ import annotations

from typing import Optional


def normalize_host(raw: Optional[str]) -> str:
    """Lowercase a Host value and drop an optional trailing ``:port``.

    ``Swagger.Dev.Example.com:443`` -> ``swagger.dev.example.com``
    ``[::1]:8080`` -> ``[::1]``
    A missing or blank host normalizes to ``""``, which never matches.
    """
    if not raw:
        return ""
    host = raw.strip().lower()
    if host.startswith("["):
        end = host.find("]")
        return host[: end + 1] if end != -1 else host
    name, sep, port = host.rpartition(":")
    if sep and name and ":" not in name and port.isdigit():
        host = name
    return host.rstrip(".")


def is_valid_host(value: str) -> bool:
    """Reject values that are obviously not a bare host name."""
    if not value or value != value.strip():
        return False
    if any(ch.isspace() for ch in value):
        return False
    return "/" not in value and "://" not in value


__all__ = ["normalize_host", "is_valid_host"]
