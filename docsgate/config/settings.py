# docsgate/config/settings.py
"""
Gateway settings (pydantic-settings BaseSettings).

Environment variables use the DOCSGATE_ prefix, e.g.::

    DOCSGATE_ROUTES_PATH=/etc/docsgate/routes.yaml
    DOCSGATE_BACKENDS='{"docs-svc": "http://docs-svc:8080"}'
"""
from __future__ import annotations

from ipaddress import ip_network
from typing import Dict, List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """docsgate settings."""

    model_config = SettingsConfigDict(
        env_prefix="DOCSGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    ENV: str = Field(default="dev", description="Environment: dev, staging, prod")

    # Route table
    ROUTES_PATH: str = "configs/routes.yaml"
    ROUTES: str = Field(default="", description="Inline route document (YAML/JSON); overrides ROUTES_PATH")
    RELOAD_SEC: int = Field(default=0, description="Route file poll interval; 0 disables polling")

    # Dispatch
    BACKENDS: Dict[str, str] = Field(default_factory=dict, description="Service name -> base URL")
    DEFAULT_BACKEND: Optional[str] = None
    DISPATCH_TIMEOUT: float = 10.0

    # Host resolution
    TRUSTED_PROXY_CIDRS: str = ""

    # Gateway-owned endpoints
    HEALTH_PATH: str = "/healthz"
    METRICS_PATH: str = "/metrics"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json|text

    PORT: int = 8080

    def trusted_proxy_networks(self) -> List:
        """Parse TRUSTED_PROXY_CIDRS, skipping entries that are not networks."""
        cidrs: List = []
        for token in self.TRUSTED_PROXY_CIDRS.split(","):
            token = token.strip()
            if not token:
                continue
            try:
                cidrs.append(ip_network(token, strict=False))
            except ValueError:
                continue
        return cidrs

    def is_prod(self) -> bool:
        return self.ENV.lower() == "prod"

    def is_dev(self) -> bool:
        return self.ENV.lower() == "dev"


__all__ = ["Settings"]
