"""Secret entity."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Secret:
    namespace: str
    name: str
    data: dict[str, bytes] = field(default_factory=dict)
