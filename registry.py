# ========================================================
# ================  registry.py  =========================
# ========================================================
from __future__ import annotations
from typing import Any, Dict, List, TYPE_CHECKING
import sys as _sys

if TYPE_CHECKING:  # pragma: no cover
    from players import BasePlayer  # type: ignore


class Registry:
    """Central registry for player backends."""

    def __init__(self, kind: str = "player") -> None:
        self.kind = kind
        self._by_name: Dict[str, type["BasePlayer"]] = {}

    def register(self, name: str, cls: type["BasePlayer"]) -> None:
        key = name.strip().lower()
        if key in self._by_name:
            print(f"[Registry] Warning: Overwriting {self.kind} '{key}'", file=_sys.stderr)
        self._by_name[key] = cls

    def names(self) -> List[str]:
        return sorted(self._by_name.keys())

    def create(self, name: str, **kwargs: Any):  # -> BasePlayer
        key = name.strip().lower()
        if key not in self._by_name:
            raise KeyError(f"Unknown {self.kind} '{name}'. Available: {', '.join(self.names()) or '(none)'}")
        return self._by_name[key](**kwargs)


PLAYERS = Registry("player")
