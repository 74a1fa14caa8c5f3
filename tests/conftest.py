import os
import sys
import textwrap

import pytest

repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if repo_root not in sys.path:
    sys.path.insert(0, repo_root)


DOCS_ROUTE = {
    "service": "docs-svc",
    "prefix": "/swagger",
    "rewrite_target": "/internal-docs",
    "allowed_hosts": ["swagger.dev.example.com", "localhost"],
}

ROUTES_YAML = textwrap.dedent(
    """
    routes:
      - service: docs-svc
        prefix: /swagger
        rewrite_target: /internal-docs
        allowed_hosts: [swagger.dev.example.com, localhost]
      - service: docs-svc
        prefix: /swagger/ui
        rewrite_target: /internal-docs/swagger-ui
        allowed_hosts: [swagger.dev.example.com]
    backends:
      docs-svc:
        url: http://docs-svc:8080
      webhooks-svc:
        url: http://webhooks-svc:8080
        prefixes: [/webhooks, /health]
    default_backend: webhooks-svc
    """
).strip()


@pytest.fixture(autouse=True)
def _reset_metrics():
    from docsgate.metrics.registry import METRICS

    METRICS.reset()
    yield
    METRICS.reset()


@pytest.fixture
def docs_route():
    from docsgate.routing.table import parse_route

    return parse_route(DOCS_ROUTE)


@pytest.fixture
def route_file(tmp_path):
    p = tmp_path / "routes.yaml"
    p.write_text(ROUTES_YAML, encoding="utf-8")
    return p
