"""In-memory run history."""

from __future__ import annotations

from threading import Lock
from typing import Dict, List, Optional

from core import Run


class InMemoryRunStore:
    """Thread-safe append-only store of completed runs, newest last per theme."""

    def __init__(self, *, max_runs_per_theme: int = 200) -> None:
        self._runs: Dict[str, List[Run]] = {}
        self._max_runs = max(1, int(max_runs_per_theme))
        self._lock = Lock()

    def append(self, run: Run) -> Run:
        with self._lock:
            history = self._runs.setdefault(run.theme_id, [])
            history.append(run)
            if len(history) > self._max_runs:
                del history[: len(history) - self._max_runs]
            return run.model_copy(deep=True)

    def latest(self, theme_id: str) -> Optional[Run]:
        with self._lock:
            history = self._runs.get(theme_id) or []
            return history[-1].model_copy(deep=True) if history else None

    def list(self, theme_id: Optional[str] = None, limit: int = 20) -> List[Run]:
        """Newest first. `theme_id=None` lists across themes by creation time."""
        with self._lock:
            if theme_id is None:
                runs = [run for history in self._runs.values() for run in history]
            else:
                runs = list(self._runs.get(theme_id) or [])
        ordered = sorted(runs, key=lambda run: run.created_at, reverse=True)
        return [run.model_copy(deep=True) for run in ordered[: max(0, int(limit))]]

    def clear(self) -> None:
        with self._lock:
            self._runs.clear()
