from __future__ import annotations

from typing import Optional

from docsgate.routing.table import RouteEntry, RouteTable


def _strip_query(path: str) -> str:
    return path.split("?", 1)[0]


def _dot_kind(segment: str) -> str:
    s = segment.lower().replace("%2e", ".")
    return s if s in (".", "..") else ""


def remove_dot_segments(path: str) -> str:
    """Resolve ``.`` and ``..`` segments the way an upstream server would.

    ``%2e`` counts as a dot, ``..`` never climbs above the root, and a path
    with no dot segments is returned unchanged.
    """
    bare, sep, query = path.partition("?")
    if not bare.startswith("/"):
        return path
    segments = bare.split("/")[1:]
    if not any(_dot_kind(s) for s in segments):
        return path
    out = []
    for seg in segments:
        kind = _dot_kind(seg)
        if kind == "..":
            if out:
                out.pop()
        elif not kind:
            out.append(seg)
    if _dot_kind(segments[-1]):
        out.append("")
    return "/" + "/".join(out) + sep + query


def prefix_matches(path: str, key: str) -> bool:
    """Segment-aware prefix test on an already lowercased path.

    ``/swagger`` matches ``/swagger`` and ``/swagger/ui`` but not ``/swaggerx``.
    """
    if key == "/":
        return path.startswith("/")
    return path == key or path.startswith(key + "/")


def classify(path: str, table: RouteTable) -> Optional[RouteEntry]:
    """Return the longest protected prefix matching ``path``, or None.

    The table is pre-sorted by descending prefix length, so the first hit wins.
    """
    lowered = _strip_query(path or "").lower()
    for entry in table.entries:
        if prefix_matches(lowered, entry.match_key):
            return entry
    return None


__all__ = ["classify", "prefix_matches", "remove_dot_segments"]
