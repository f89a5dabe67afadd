"""Labelled counters for signing outcomes and the controller.

Each counter family is keyed by name and holds one value per label
set.  :meth:`MetricsCollector.export` renders the Prometheus text
exposition format, one ``# HELP``/``# TYPE`` block per family.
"""

from __future__ import annotations

import threading
from pathlib import Path

_HELP = {
    "certreq_outcomes_total": "Signing passes by outcome status and reason.",
    "certreq_controller_requeues_total": "Requests put back on the queue with backoff.",
    "certreq_controller_sync_errors_total": "Signing passes that raised for a requeue.",
    "certreq_controller_callback_errors_total": "Issued-result callbacks that raised.",
}

LabelSet = tuple[tuple[str, str], ...]


def _label_set(labels: dict | None) -> LabelSet:
    if not labels:
        return ()
    return tuple(sorted((str(k), str(v)) for k, v in labels.items()))


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _render(name: str, label_set: LabelSet) -> str:
    if not label_set:
        return name
    inner = ",".join(f'{k}="{_escape(v)}"' for k, v in label_set)
    return f"{name}{{{inner}}}"


class MetricsCollector:
    """Thread-safe labelled counters."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._families: dict[str, dict[LabelSet, int]] = {}

    def increment(self, name: str, amount: int = 1, labels: dict | None = None) -> None:
        key = _label_set(labels)
        with self._lock:
            family = self._families.setdefault(name, {})
            family[key] = family.get(key, 0) + amount

    def get(self, name: str, labels: dict | None = None) -> int:
        """Current value of one labelled counter, 0 if never incremented."""
        with self._lock:
            return self._families.get(name, {}).get(_label_set(labels), 0)

    def total(self, name: str) -> int:
        """Sum of a counter family across all label sets."""
        with self._lock:
            return sum(self._families.get(name, {}).values())

    def export(self) -> str:
        """Render every family in Prometheus text format."""
        with self._lock:
            snapshot = {name: dict(family) for name, family in self._families.items()}

        lines: list[str] = []
        for name in sorted(snapshot):
            if name in _HELP:
                lines.append(f"# HELP {name} {_HELP[name]}")
            lines.append(f"# TYPE {name} counter")
            lines.extend(
                f"{_render(name, label_set)} {value}"
                for label_set, value in sorted(snapshot[name].items())
            )
        return "".join(f"{line}\n" for line in lines)

    def write(self, path: str | Path) -> None:
        """Write :meth:`export` output to *path*, creating parent directories."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.export(), encoding="utf-8")
