# docsgate/routing/table.py
"""
Route table model and loader.

A route file is YAML (JSON is accepted as a YAML subset)::

    routes:
      - service: docs-svc
        prefix: /swagger
        rewrite_target: /internal-docs
        allowed_hosts: [swagger.dev.example.com, localhost]
    backends:
      docs-svc:
        url: http://docs-svc:8080
        prefixes: [/api/docs]
    default_backend: docs-svc

Tables are immutable. A reload builds a new RouteTable and swaps the
reference (see docsgate.routing.state).
"""
from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple, Union

import yaml

from docsgate.errors import ConfigError
from docsgate.policy.hosts import is_valid_host, normalize_host

_ALIASES = {
    "service": ("service", "service_name", "serviceName"),
    "prefix": ("prefix", "protected_prefix", "protectedPrefix"),
    "rewrite_target": ("rewrite_target", "rewriteTarget"),
    "allowed_hosts": ("allowed_hosts", "allowedHosts"),
}


def canonical_prefix(prefix: str) -> str:
    """Lowercased prefix without a trailing slash ("/" stays "/")."""
    key = prefix.lower()
    if len(key) > 1:
        key = key.rstrip("/") or "/"
    return key


@dataclass(frozen=True)
class RouteEntry:
    service_name: str
    protected_prefix: str
    rewrite_target: str
    allowed_hosts: FrozenSet[str]

    @property
    def match_key(self) -> str:
        return canonical_prefix(self.protected_prefix)


@dataclass(frozen=True)
class RouteTable:
    """Routes ordered by descending prefix length; first match is the longest."""

    entries: Tuple[RouteEntry, ...] = ()
    etag: str = ""

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def prefixes(self) -> List[str]:
        return [e.protected_prefix for e in self.entries]


@dataclass(frozen=True)
class BackendSpec:
    name: str
    url: str
    prefixes: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RouteDocument:
    table: RouteTable
    backends: Dict[str, BackendSpec] = field(default_factory=dict)
    default_backend: Optional[str] = None


def _pick(record: Mapping[str, Any], name: str) -> Any:
    for key in _ALIASES[name]:
        if key in record:
            return record[key]
    return None


def _require_path(value: Any, what: str, index: int) -> str:
    if not isinstance(value, str) or not value.startswith("/"):
        raise ConfigError(f"routes[{index}].{what} must be a path starting with '/', got {value!r}")
    return value


def _parse_hosts(value: Any, index: int) -> FrozenSet[str]:
    if isinstance(value, str) or not isinstance(value, (list, tuple, set, frozenset)):
        raise ConfigError(f"routes[{index}].allowed_hosts must be a list of host names")
    hosts = set()
    for raw in value:
        if not isinstance(raw, str) or not is_valid_host(raw):
            raise ConfigError(f"routes[{index}].allowed_hosts has malformed host {raw!r}")
        hosts.add(normalize_host(raw))
    if not hosts:
        raise ConfigError(f"routes[{index}].allowed_hosts must not be empty")
    return frozenset(hosts)


def parse_route(record: Any, index: int = 0) -> RouteEntry:
    if not isinstance(record, Mapping):
        raise ConfigError(f"routes[{index}] must be a mapping, got {type(record).__name__}")
    service = _pick(record, "service")
    if not isinstance(service, str) or not service.strip():
        raise ConfigError(f"routes[{index}].service must be a non-empty string")
    target = _require_path(_pick(record, "rewrite_target"), "rewrite_target", index)
    if canonical_prefix(target) == "/":
        raise ConfigError(f"routes[{index}].rewrite_target must not be '/'")
    return RouteEntry(
        service_name=service.strip(),
        protected_prefix=_require_path(_pick(record, "prefix"), "prefix", index),
        rewrite_target=target,
        allowed_hosts=_parse_hosts(_pick(record, "allowed_hosts"), index),
    )


def _records_etag(records: List[Any]) -> str:
    raw = json.dumps(records, sort_keys=True, default=sorted).encode()
    return hashlib.sha256(raw).hexdigest()


def build_route_table(records: Iterable[Any], etag: Optional[str] = None) -> RouteTable:
    """Validate route records and return an ordered, immutable table.

    Raises ConfigError on malformed records or duplicate prefixes.
    """
    records = list(records or [])
    entries: List[RouteEntry] = []
    seen: Dict[str, int] = {}
    for index, record in enumerate(records):
        entry = parse_route(record, index)
        key = entry.match_key
        if key in seen:
            raise ConfigError(
                f"duplicate protected prefix {entry.protected_prefix!r} "
                f"(routes[{seen[key]}] and routes[{index}])"
            )
        seen[key] = index
        entries.append(entry)
    entries.sort(key=lambda e: (-len(e.match_key), e.match_key))
    return RouteTable(entries=tuple(entries), etag=etag or _records_etag(records))


def _parse_backends(raw: Any) -> Dict[str, BackendSpec]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ConfigError("backends must be a mapping of service name to backend")
    out: Dict[str, BackendSpec] = {}
    for name, spec in raw.items():
        if isinstance(spec, str):
            url, prefixes = spec, []
        elif isinstance(spec, Mapping):
            url, prefixes = spec.get("url"), spec.get("prefixes") or []
        else:
            raise ConfigError(f"backends.{name} must be a URL or a mapping")
        if not isinstance(url, str) or "://" not in url:
            raise ConfigError(f"backends.{name}.url must be an absolute URL, got {url!r}")
        if not all(isinstance(p, str) and p.startswith("/") for p in prefixes):
            raise ConfigError(f"backends.{name}.prefixes must be paths starting with '/'")
        out[str(name)] = BackendSpec(name=str(name), url=url.rstrip("/"), prefixes=tuple(prefixes))
    return out


def parse_document(text: Union[str, bytes]) -> RouteDocument:
    """Parse a route file body.

    The etag is the sha256 of the body as given: file bytes (so it matches the
    hot-reload file hash, CRLF and BOM included) or the UTF-8 of inline text.
    """
    if isinstance(text, bytes):
        etag = hashlib.sha256(text).hexdigest()
        try:
            text = text.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ConfigError(f"route file is not UTF-8: {exc}") from exc
    else:
        etag = hashlib.sha256(text.encode()).hexdigest()
    try:
        doc = yaml.safe_load(text) if text.strip() else {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"route file is not valid YAML/JSON: {exc}") from exc
    doc = doc or {}
    if not isinstance(doc, Mapping):
        raise ConfigError("route file must be a mapping with a 'routes' list")
    routes = doc.get("routes") or []
    if not isinstance(routes, list):
        raise ConfigError("'routes' must be a list")
    default_backend = doc.get("default_backend")
    if default_backend is not None and not isinstance(default_backend, str):
        raise ConfigError("default_backend must be a service name")
    return RouteDocument(
        table=build_route_table(routes, etag=etag),
        backends=_parse_backends(doc.get("backends")),
        default_backend=default_backend,
    )


def load_document(path: str) -> RouteDocument:
    try:
        with open(path, "rb") as f:
            raw = f.read()
    except OSError as exc:
        raise ConfigError(f"cannot read route file {path!r}: {exc}") from exc
    return parse_document(raw)


__all__ = [
    "RouteEntry",
    "RouteTable",
    "BackendSpec",
    "RouteDocument",
    "canonical_prefix",
    "parse_route",
    "build_route_table",
    "parse_document",
    "load_document",
]
