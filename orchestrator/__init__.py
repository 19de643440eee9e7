"""Theme run orchestration and run history."""

from .service import (
    ThemeRunner,
    get_default_runner,
    run_all_enabled_themes,
    run_theme,
)
from .store import InMemoryRunStore

__all__ = [
    "InMemoryRunStore",
    "ThemeRunner",
    "get_default_runner",
    "run_all_enabled_themes",
    "run_theme",
]
