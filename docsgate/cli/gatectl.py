"""
docsgate/cli/gatectl.py

CLI:
  gatectl check-config [--routes <file>]
  gatectl decide --host <host> --path <path> [--routes <file>]
  gatectl serve [--port <port>]
"""
from __future__ import annotations

import argparse
import json
import sys
from typing import List, Optional

from docsgate.config.settings import Settings
from docsgate.errors import ConfigError
from docsgate.gateway.pipeline import IncomingRequest, evaluate
from docsgate.routing.table import RouteDocument, load_document, parse_document


def _load(routes: Optional[str], settings: Settings) -> RouteDocument:
    if routes:
        return load_document(routes)
    if settings.ROUTES.strip():
        return parse_document(settings.ROUTES)
    return load_document(settings.ROUTES_PATH)


def cmd_check_config(args, settings: Settings) -> int:
    try:
        doc = _load(args.routes, settings)
    except ConfigError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 2
    table = doc.table
    print(f"[OK] {len(table)} route(s), etag={table.etag}")
    for entry in table:
        hosts = ",".join(sorted(entry.allowed_hosts))
        print(f"  {entry.protected_prefix} -> {entry.service_name}{entry.rewrite_target} hosts={hosts}")
    for name, spec in sorted(doc.backends.items()):
        print(f"  backend {name} = {spec.url}")
    return 0


def cmd_decide(args, settings: Settings) -> int:
    try:
        doc = _load(args.routes, settings)
    except ConfigError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 2
    path, _, query = args.path.partition("?")
    result = evaluate(IncomingRequest(host=args.host, path=path, query=query), doc.table)
    decision = result.decision
    route = decision.matched_route
    out = {
        "outcome": decision.outcome.value,
        "protected": decision.protected,
        "reason": decision.reason,
        "service": route.service_name if route else None,
        "path": result.request.path,
    }
    print(json.dumps(out, ensure_ascii=False, indent=2))
    return 0 if decision.allowed else 1


def cmd_serve(args, settings: Settings) -> int:
    import uvicorn

    from docsgate.gateway.main import create_app
    from docsgate.observability.logging import setup_logging

    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    try:
        app = create_app(settings)
    except ConfigError as e:
        print(f"[ERROR] refusing to start: {e}", file=sys.stderr)
        return 2
    uvicorn.run(app, host=args.host, port=args.port or settings.PORT, log_config=None)
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="gatectl", description="docsgate route table tooling")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("check-config", help="validate a route file")
    p.add_argument("--routes", help="route file (default: DOCSGATE_ROUTES_PATH)")
    p.set_defaults(func=cmd_check_config)

    p = sub.add_parser("decide", help="evaluate one host/path against the route table")
    p.add_argument("--host", default=None, help="Host header value (omit for no Host)")
    p.add_argument("--path", required=True, help="request path, optionally with ?query")
    p.add_argument("--routes", help="route file (default: DOCSGATE_ROUTES_PATH)")
    p.set_defaults(func=cmd_decide)

    p = sub.add_parser("serve", help="run the gateway")
    p.add_argument("--host", default="0.0.0.0")
    p.add_argument("--port", type=int, default=None)
    p.set_defaults(func=cmd_serve)
    return ap


def main(argv: List[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args, Settings())


if __name__ == "__main__":
    sys.exit(main())
