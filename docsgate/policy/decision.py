"""
Host-based access decision for protected prefixes.

decide() is on the hot path of every protected request: pure, total,
no I/O. Same (host, route) always yields the same Decision.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from docsgate.policy.hosts import normalize_host
from docsgate.routing.table import RouteEntry


class Outcome(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True)
class Decision:
    outcome: Outcome
    matched_route: Optional[RouteEntry] = None
    reason: str = ""

    @property
    def allowed(self) -> bool:
        return self.outcome is Outcome.ALLOW

    @property
    def protected(self) -> bool:
        return self.matched_route is not None


UNPROTECTED = Decision(outcome=Outcome.ALLOW, matched_route=None, reason="unprotected")


def decide(route: RouteEntry, host: Optional[str]) -> Decision:
    canonical = normalize_host(host)
    if canonical and canonical in route.allowed_hosts:
        return Decision(
            outcome=Outcome.ALLOW,
            matched_route=route,
            reason=f"host {canonical} permitted for prefix {route.protected_prefix}",
        )
    return Decision(
        outcome=Outcome.DENY,
        matched_route=route,
        reason=f"host {canonical or '<none>'} not permitted for prefix {route.protected_prefix}",
    )


__all__ = ["Outcome", "Decision", "UNPROTECTED", "decide"]
