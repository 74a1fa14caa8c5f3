"""docsgate: host-gated access control for documentation endpoints."""

__version__ = "0.1.0"
