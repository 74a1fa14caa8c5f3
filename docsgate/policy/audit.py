# docsgate/policy/audit.py
"""
Deny audit sink.

Every Deny produces one structured record on the ``docsgate.audit`` logger::

    {timestamp, host, path, matched_prefix, reason}

Logging failures are swallowed; they never change the HTTP outcome.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from docsgate.metrics.registry import METRICS
from docsgate.policy.decision import Decision

log = logging.getLogger("docsgate.audit")


class DecisionLogger:
    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or log

    def build_record(self, host: Optional[str], path: str, decision: Decision) -> Dict[str, Any]:
        route = decision.matched_route
        return {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "host": host or "",
            "path": path,
            "matched_prefix": route.protected_prefix if route else None,
            "reason": decision.reason,
        }

    def record(self, host: Optional[str], path: str, decision: Decision) -> None:
        if decision.allowed:
            return
        try:
            self.logger.warning("gate_deny", extra=self.build_record(host, path, decision))
        except Exception:
            METRICS.inc("docsgate_audit_errors_total")


__all__ = ["DecisionLogger"]
