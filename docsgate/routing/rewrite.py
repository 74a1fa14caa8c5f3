from __future__ import annotations

from docsgate.routing.classifier import prefix_matches
from docsgate.routing.table import RouteEntry, canonical_prefix


def _join(target: str, remainder: str) -> str:
    if not remainder:
        return target
    if target.endswith("/") and remainder.startswith("/"):
        return target + remainder[1:]
    return target + remainder


def rewrite_path(path: str, route: RouteEntry) -> str:
    """Swap the protected prefix for the route's rewrite target.

    Everything after the prefix, including any ``?query``, is kept as-is.
    A path that does not start with the protected prefix is returned
    unchanged. When the rewrite target is nested under the prefix (or equal to
    it), a path already under the target is left alone so a second call is a
    no-op. A target shorter than the prefix never shadows it.
    """
    bare, sep, query = path.partition("?")
    lowered = bare.lower()
    key = route.match_key
    if not prefix_matches(lowered, key):
        return path
    target_key = canonical_prefix(route.rewrite_target)
    if len(target_key) >= len(key) and prefix_matches(lowered, target_key):
        return path
    cut = 0 if key == "/" else len(key)
    rewritten = _join(route.rewrite_target, bare[cut:])
    return rewritten + sep + query


__all__ = ["rewrite_path"]
