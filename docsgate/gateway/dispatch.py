# docsgate/gateway/dispatch.py
"""
Backend dispatch boundary.

The gate hands off a DispatchRequest {service_name, path, query, method,
headers, body}. Resolution failures are local 404s and never reach the
network; transport failures surface as DispatchError (502). No retries.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Tuple

import httpx

from docsgate.errors import DispatchError, UnknownServiceError
from docsgate.metrics.registry import METRICS
from docsgate.routing.classifier import prefix_matches
from docsgate.routing.table import BackendSpec, canonical_prefix

log = logging.getLogger(__name__)

HOP_BY_HOP = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)
_DROP_REQUEST = HOP_BY_HOP | {"host", "content-length"}
_DROP_RESPONSE = HOP_BY_HOP | {"content-length", "content-encoding"}


@dataclass(frozen=True)
class DispatchRequest:
    service_name: str
    path: str
    query: str = ""
    method: str = "GET"
    headers: Tuple[Tuple[str, str], ...] = ()
    body: bytes = b""

    @property
    def target(self) -> str:
        return f"{self.path}?{self.query}" if self.query else self.path


def forward_headers(headers: Iterable[Tuple[str, str]], host: Optional[str], scheme: str) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for key, value in headers:
        if key.lower() in _DROP_REQUEST:
            continue
        out[key] = value
    if host:
        out["x-forwarded-host"] = host
    out["x-forwarded-proto"] = scheme
    return out


def response_headers(headers: Iterable[Tuple[str, str]]) -> Dict[str, str]:
    return {k: v for k, v in headers if k.lower() not in _DROP_RESPONSE}


class BackendRegistry:
    """Service name -> base URL, plus passthrough path -> service resolution."""

    def __init__(self, backends: Mapping[str, BackendSpec], default_backend: Optional[str] = None):
        self.backends = dict(backends)
        self.default_backend = default_backend
        self._by_prefix = sorted(
            ((canonical_prefix(p), spec.name) for spec in self.backends.values() for p in spec.prefixes),
            key=lambda item: -len(item[0]),
        )

    @classmethod
    def from_sources(
        cls,
        file_backends: Mapping[str, BackendSpec],
        env_backends: Mapping[str, str],
        default_backend: Optional[str] = None,
    ) -> "BackendRegistry":
        merged: Dict[str, BackendSpec] = {
            name: BackendSpec(name=name, url=url.rstrip("/")) for name, url in (env_backends or {}).items()
        }
        merged.update(file_backends or {})
        return cls(merged, default_backend)

    def url_for(self, service_name: Optional[str]) -> str:
        spec = self.backends.get(service_name or "")
        if spec is None:
            raise UnknownServiceError(service_name)
        return spec.url

    def service_for_path(self, path: str) -> Optional[str]:
        lowered = path.lower()
        for prefix, name in self._by_prefix:
            if prefix_matches(lowered, prefix):
                return name
        return self.default_backend


class BackendDispatcher:
    def __init__(
        self,
        registry: BackendRegistry,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.registry = registry
        self._client = client
        self.timeout = timeout

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=False,
                headers={"User-Agent": "docsgate/1"},
            )
        return self._client

    async def forward(self, req: DispatchRequest) -> httpx.Response:
        base = self.registry.url_for(req.service_name)
        url = base + req.target
        try:
            resp = await self.client.request(req.method, url, headers=dict(req.headers), content=req.body)
        except httpx.TransportError as exc:
            METRICS.inc("docsgate_dispatch_total", {"service": req.service_name, "outcome": "error"})
            log.warning(
                "dispatch_failed",
                extra={"service": req.service_name, "path": req.path, "error": exc.__class__.__name__},
            )
            raise DispatchError(req.service_name, exc) from exc
        METRICS.inc("docsgate_dispatch_total", {"service": req.service_name, "outcome": "ok"})
        return resp

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


__all__ = [
    "DispatchRequest",
    "BackendRegistry",
    "BackendDispatcher",
    "forward_headers",
    "response_headers",
    "HOP_BY_HOP",
]
