from __future__ import annotations

import threading
from collections import defaultdict
from typing import Dict


class MetricsRegistry:
    """In-memory counters with a minimal Prometheus text export."""

    def __init__(self):
        self.counters: Dict[str, float] = defaultdict(float)
        self._lock = threading.Lock()

    def inc(self, name: str, labels: Dict[str, str] | None = None, value: float = 1.0):
        key = self._key(name, labels)
        with self._lock:
            self.counters[key] += value

    def get(self, name: str, labels: Dict[str, str] | None = None) -> float:
        with self._lock:
            return self.counters.get(self._key(name, labels), 0.0)

    def reset(self):
        with self._lock:
            self.counters.clear()

    def _key(self, name: str, labels: Dict[str, str] | None = None):
        if not labels:
            return name
        parts = [f"{k}={v}" for k, v in sorted(labels.items())]
        return f"{name}|" + "|".join(parts)

    def export_prom_text(self) -> str:
        """Counters keyed name|k=v are exposed as name{k="v"} value."""
        with self._lock:
            items = sorted(self.counters.items())
        lines = []
        typed = set()
        for key, val in items:
            name, labels = self._split_key(key)
            if name not in typed:
                lines.append(f"# TYPE {name} counter")
                typed.add(name)
            lines.append(f"{name}{self._format_labels(labels)} {val}")
        return "\n".join(lines) + "\n"

    def _split_key(self, key: str) -> tuple[str, Dict[str, str]]:
        if "|" not in key:
            return key, {}
        name, *label_parts = key.split("|")
        labels = {}
        for part in label_parts:
            if "=" in part:
                k, v = part.split("=", 1)
                labels[k] = v
        return name, labels

    def _format_labels(self, labels: Dict[str, str]) -> str:
        if not labels:
            return ""
        items = [f'{k}="{v}"' for k, v in sorted(labels.items())]
        return "{" + ",".join(items) + "}"


METRICS = MetricsRegistry()
