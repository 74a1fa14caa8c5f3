"""
Framework-neutral gate: IncomingRequest -> GateResult.

    normalize -> classify -> (matched) decide -> (allow) rewrite

Unmatched requests come back with the UNPROTECTED decision and only their
dot segments resolved.
Nothing here performs I/O.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Mapping, Optional

from docsgate.policy.decision import UNPROTECTED, Decision, decide
from docsgate.routing.classifier import classify, remove_dot_segments
from docsgate.routing.rewrite import rewrite_path
from docsgate.routing.table import RouteTable


@dataclass(frozen=True)
class IncomingRequest:
    host: Optional[str]
    path: str
    headers: Mapping[str, str] = field(default_factory=dict)
    query: str = ""

    @classmethod
    def from_headers(cls, path: str, headers: Mapping[str, str], query: str = "") -> "IncomingRequest":
        """Build from a header mapping; a missing Host header leaves host as None."""
        host = None
        for key, value in headers.items():
            if key.lower() == "host":
                host = value
                break
        return cls(host=host, path=path, headers=headers, query=query)


@dataclass(frozen=True)
class GateResult:
    decision: Decision
    request: IncomingRequest

    @property
    def rewritten(self) -> bool:
        return self.decision.protected and self.decision.allowed


def evaluate(request: IncomingRequest, table: RouteTable) -> GateResult:
    # match on the path the backend will resolve, not the one as sent
    path = remove_dot_segments(request.path)
    if path != request.path:
        request = replace(request, path=path)
    route = classify(request.path, table)
    if route is None:
        return GateResult(decision=UNPROTECTED, request=request)
    decision = decide(route, request.host)
    if not decision.allowed:
        return GateResult(decision=decision, request=request)
    return GateResult(decision=decision, request=replace(request, path=rewrite_path(request.path, route)))


__all__ = ["IncomingRequest", "GateResult", "evaluate"]
