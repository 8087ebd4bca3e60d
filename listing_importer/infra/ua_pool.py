"""Rotation of browser user agents across page contexts."""

from __future__ import annotations

from itertools import cycle
from pathlib import Path
from threading import Lock
from typing import Iterable, Iterator


class UserAgentPool:
    """Hand out configured user agents in turn, one per browser context.

    Agents come from an explicit list, a newline-separated file, or both;
    blank entries and repeats are dropped. An empty pool yields ``None`` so
    the browser keeps its built-in agent.
    """

    def __init__(self, user_agents: Iterable[str] | None = None, file_path: Path | None = None) -> None:
        candidates = list(user_agents or [])
        if file_path is not None and file_path.exists():
            candidates.extend(file_path.read_text(encoding="utf-8").splitlines())
        self._agents: list[str] = list(dict.fromkeys(ua.strip() for ua in candidates if ua.strip()))
        self._rotation: Iterator[str] | None = cycle(self._agents) if self._agents else None
        self._lock = Lock()

    def __len__(self) -> int:
        return len(self._agents)

    def get(self) -> str | None:
        if self._rotation is None:
            return None
        with self._lock:
            return next(self._rotation)


__all__ = ["UserAgentPool"]
