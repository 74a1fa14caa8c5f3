# docsgate/gateway/middleware.py
"""
Starlette adapter for the docs gate.

- Dot segments (``/x/../swagger``, ``%2e%2e``) are resolved before matching
  and in the forwarded path.
- Unprotected paths: passed through untouched.
- Protected path, host not allowed: 403 {"detail": ...}, downstream never runs,
  deny record written by DecisionLogger.
- Protected path, host allowed: scope path rewritten to the backend's internal
  docs path and the target service stored on ``request.state.target_service``.

The host comes from the Host header. When the direct peer is a trusted proxy
(DOCSGATE_TRUSTED_PROXY_CIDRS), X-Forwarded-Host wins.
"""
from __future__ import annotations

import logging
from ipaddress import ip_address
from typing import List, Optional
from urllib.parse import quote, unquote

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from docsgate.gateway.pipeline import IncomingRequest, evaluate
from docsgate.metrics.registry import METRICS
from docsgate.policy.audit import DecisionLogger
from docsgate.routing.classifier import remove_dot_segments
from docsgate.routing.rewrite import rewrite_path
from docsgate.routing.state import RouteTableState

log = logging.getLogger(__name__)

DENY_DETAIL = "Documentation is not available on this host"
ETAG_HEADER = "X-Docsgate-Table-ETag"


class DocsGateMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        state: RouteTableState,
        audit: Optional[DecisionLogger] = None,
        trusted_proxies: Optional[List] = None,
    ):
        super().__init__(app)
        self.state = state
        self.audit = audit or DecisionLogger()
        self.trusted_proxies = trusted_proxies or []

    def _is_trusted_proxy(self, request: Request) -> bool:
        client = request.client
        if not client or not client.host or not self.trusted_proxies:
            return False
        try:
            ip = ip_address(client.host)
        except ValueError:
            return False
        return any(ip in cidr for cidr in self.trusted_proxies)

    def _resolved_host(self, request: Request) -> Optional[str]:
        host = None
        if self._is_trusted_proxy(request):
            forwarded = request.headers.get("x-forwarded-host")
            if forwarded:
                host = forwarded.split(",")[0].strip()
        return host or request.headers.get("host")

    @staticmethod
    def _normalize_scope_path(scope) -> str:
        """Resolve dot segments in scope path and raw_path; returns the new path.

        Both keys are written back so downstream routing and the forwarded URL
        see the same path the gate decided on.
        """
        path = scope.get("path", "")
        normalized = remove_dot_segments(path)
        if normalized == path:
            return path
        scope["path"] = normalized
        raw = scope.get("raw_path")
        if raw is not None:
            raw_str = remove_dot_segments(raw.decode("latin-1"))
            if unquote(raw_str) != normalized:
                # encoded separators; rebuild from the decoded path
                raw_str = quote(normalized)
            scope["raw_path"] = raw_str.encode("latin-1")
        return normalized

    async def dispatch(self, request: Request, call_next):
        # one snapshot per request; a concurrent reload cannot change it mid-decision
        table = self.state.table
        received = request.scope.get("path", "")
        path = self._normalize_scope_path(request.scope)
        incoming = IncomingRequest(
            host=self._resolved_host(request),
            path=path,
            headers=request.headers,
            query=request.scope.get("query_string", b"").decode("latin-1"),
        )
        result = evaluate(incoming, table)
        decision = result.decision

        if not decision.protected:
            METRICS.inc("docsgate_requests_total", {"result": "passthrough"})
            return await call_next(request)

        if not decision.allowed:
            METRICS.inc("docsgate_requests_total", {"result": "deny"})
            self.audit.record(incoming.host, received, decision)
            return JSONResponse({"detail": DENY_DETAIL}, status_code=403)

        route = decision.matched_route
        METRICS.inc("docsgate_requests_total", {"result": "allow"})
        new_path = result.request.path
        request.scope["path"] = new_path
        raw = request.scope.get("raw_path")
        if raw is not None:
            raw_str = raw.decode("latin-1")
            new_raw = rewrite_path(raw_str, route)
            if new_raw == raw_str and new_path != path:
                # raw prefix was percent-encoded; rebuild from the decoded path
                new_raw = quote(new_path)
            request.scope["raw_path"] = new_raw.encode("latin-1")
        request.state.target_service = route.service_name
        log.debug(
            "gate_allow",
            extra={"host": incoming.host, "path": path, "service": route.service_name, "etag": table.etag},
        )

        response = await call_next(request)
        response.headers[ETAG_HEADER] = table.etag or "missing"
        return response


__all__ = ["DocsGateMiddleware", "DENY_DETAIL", "ETAG_HEADER"]
