# docsgate/routing/state.py
"""
Process-wide route table holder with atomic swap.

Readers take ``state.table`` once per request and use that snapshot for the
whole decision; they never lock. Reloads build a complete new RouteTable and
replace the reference under a writer lock, so a reader sees either the old or
the new table, never a mix.

A reload that fails validation keeps the current table.
"""
from __future__ import annotations

import asyncio
import hashlib
import logging
import threading
import time
from typing import Optional

from docsgate.errors import ConfigError
from docsgate.metrics.registry import METRICS
from docsgate.routing.table import RouteDocument, RouteTable, load_document, parse_document

log = logging.getLogger(__name__)


def _sha256_of(path: str) -> str:
    try:
        with open(path, "rb") as f:
            return hashlib.sha256(f.read()).hexdigest()
    except OSError:
        return ""


class RouteTableState:
    """Hot-reloadable route table."""

    def __init__(
        self,
        path: Optional[str] = None,
        inline: Optional[str] = None,
        reload_sec: int = 0,
        require_routes: bool = False,
    ):
        self.path = path
        self.inline = inline or ""
        self.reload_sec = max(0, reload_sec)
        self.require_routes = require_routes
        self._lock = threading.Lock()
        self._next_check_ts = 0.0
        # startup: ConfigError propagates and the gateway refuses to start
        self.document = self._load()
        self._table = self.document.table
        self._next_check_ts = time.time() + self.reload_sec
        METRICS.inc("docsgate_route_table_reload_total", {"result": "initial"})
        log.info(
            "route_table_loaded",
            extra={"etag": self._table.etag, "routes": len(self._table), "prefixes": self._table.prefixes()},
        )

    @property
    def table(self) -> RouteTable:
        return self._table

    @property
    def etag(self) -> str:
        return self._table.etag

    def _load(self) -> RouteDocument:
        if self.inline.strip():
            doc = parse_document(self.inline)
        elif self.path:
            doc = load_document(self.path)
        else:
            raise ConfigError("no route source configured (set DOCSGATE_ROUTES_PATH or DOCSGATE_ROUTES)")
        if self.require_routes and not len(doc.table):
            raise ConfigError("route table is empty")
        return doc

    def swap(self, table: RouteTable) -> RouteTable:
        """Install ``table`` and return the one it replaced."""
        with self._lock:
            previous = self._table
            self._table = table
        return previous

    def reload(self) -> bool:
        """Re-read the route source. Returns True when a new table was installed."""
        with self._lock:
            try:
                doc = self._load()
            except ConfigError as exc:
                METRICS.inc("docsgate_route_table_reload_total", {"result": "error"})
                log.error("route_table_reload_failed", extra={"error": str(exc), "etag": self._table.etag})
                return False
            if doc.table.etag == self._table.etag:
                METRICS.inc("docsgate_route_table_reload_total", {"result": "miss"})
                return False
            self.document = doc
            self._table = doc.table
        METRICS.inc("docsgate_route_table_reload_total", {"result": "hit"})
        log.info("route_table_reloaded", extra={"etag": doc.table.etag, "routes": len(doc.table)})
        return True

    def ensure_fresh(self, now: Optional[float] = None) -> bool:
        """Reload when the poll interval elapsed and the route file changed."""
        if not self.reload_sec or self.inline.strip() or not self.path:
            return False
        now = now or time.time()
        if now < self._next_check_ts:
            return False
        self._next_check_ts = now + self.reload_sec
        current = _sha256_of(self.path)
        if not current or current == self._table.etag:
            return False
        return self.reload()


async def poll_forever(state: RouteTableState) -> None:
    """Background poll; file reads run off the event loop."""
    if not state.reload_sec:
        return
    while True:
        await asyncio.sleep(state.reload_sec)
        await asyncio.to_thread(state.ensure_fresh)


__all__ = ["RouteTableState", "poll_forever"]
