import pytest

from docsgate.routing.rewrite import rewrite_path
from docsgate.routing.table import parse_route


@pytest.mark.parametrize(
    "path,expected",
    [
        ("/swagger", "/internal-docs"),
        ("/swagger/", "/internal-docs/"),
        ("/swagger/ui", "/internal-docs/ui"),
        ("/swagger/ui/index.html", "/internal-docs/ui/index.html"),
        ("/Swagger/UI", "/internal-docs/UI"),
        ("/swagger/ui?url=/a%20b&x=1", "/internal-docs/ui?url=/a%20b&x=1"),
    ],
)
def test_rewrite(docs_route, path, expected):
    assert rewrite_path(path, docs_route) == expected


@pytest.mark.parametrize("path", ["/swagger", "/swagger/ui", "/swagger/ui?x=1", "/SWAGGER/a/b/"])
def test_rewrite_is_idempotent(docs_route, path):
    once = rewrite_path(path, docs_route)
    assert rewrite_path(once, docs_route) == once


def test_non_matching_path_unchanged(docs_route):
    assert rewrite_path("/swaggerx/ui", docs_route) == "/swaggerx/ui"
    assert rewrite_path("/health", docs_route) == "/health"


def test_target_with_trailing_slash():
    route = parse_route(
        {"service": "s", "prefix": "/docs", "rewrite_target": "/internal/", "allowed_hosts": ["a"]}
    )
    assert rewrite_path("/docs/ui", route) == "/internal/ui"
    assert rewrite_path("/docs", route) == "/internal/"


def test_target_nested_under_prefix_is_idempotent():
    route = parse_route(
        {"service": "s", "prefix": "/docs", "rewrite_target": "/docs/internal", "allowed_hosts": ["a"]}
    )
    once = rewrite_path("/docs/ui", route)
    assert once == "/docs/internal/ui"
    assert rewrite_path(once, route) == once


def test_target_that_is_parent_of_prefix_still_rewrites():
    route = parse_route(
        {"service": "s", "prefix": "/api/docs", "rewrite_target": "/api", "allowed_hosts": ["a"]}
    )
    assert rewrite_path("/api/docs", route) == "/api"
    once = rewrite_path("/api/docs/ui?x=1", route)
    assert once == "/api/ui?x=1"
    assert rewrite_path(once, route) == once


def test_target_equal_to_prefix_is_identity():
    route = parse_route({"service": "s", "prefix": "/docs", "rewrite_target": "/docs", "allowed_hosts": ["a"]})
    assert rewrite_path("/docs/ui", route) == "/docs/ui"
    assert rewrite_path("/DOCS", route) == "/DOCS"
