"""Theme run orchestration: collect, digest, persist; one run per theme at a time."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import logging
from typing import Any, Dict, Iterable, List, Optional

from config import get_xai_settings
from core import Run, ThemeSpec
from pipeline.digest import build_trend_payload
from sources.collector import collect_theme_signals
from utils.exceptions import RunAlreadyInProgressError
from utils.timeutils import create_id, get_period_label, get_since_date, jst_parts
from .store import InMemoryRunStore


logger = logging.getLogger(__name__)

NO_X_MODEL = "no_x_model"


class ThemeRunner:
    """Runs themes end-to-end and records each `Run` in the store.

    A theme that already has a run in flight is rejected with
    `RunAlreadyInProgressError`; the caller decides whether to retry later.
    """

    def __init__(self, *, store: Optional[InMemoryRunStore] = None) -> None:
        self._store = store or InMemoryRunStore()
        self._in_flight: Dict[str, asyncio.Task] = {}

    @property
    def store(self) -> InMemoryRunStore:
        return self._store

    def is_running(self, theme_id: str) -> bool:
        return theme_id in self._in_flight

    async def run_theme(self, theme: ThemeSpec, **options: Any) -> Run:
        """Collect and digest one theme. Keyword options go to `collect_theme_signals`."""
        if theme.id in self._in_flight:
            raise RunAlreadyInProgressError(theme.id)

        task = asyncio.ensure_future(self._execute(theme, **options))
        self._in_flight[theme.id] = task
        try:
            return await task
        finally:
            self._in_flight.pop(theme.id, None)

    async def _execute(self, theme: ThemeSpec, **options: Any) -> Run:
        xai_settings = get_xai_settings()
        api_key = options.get("api_key")
        if api_key is None:
            api_key = xai_settings.api_key
        model = options.get("model") or xai_settings.model
        now: Optional[datetime] = options.get("now")

        logger.info("run_start theme=%s period_days=%d", theme.id, theme.period_days)
        collection = await collect_theme_signals(theme, **{**options, "api_key": api_key, "model": model})
        digest = build_trend_payload(theme, collection, now=now)

        created_at = now or datetime.now(timezone.utc)
        since_date = get_since_date(theme.period_days, now=now)
        run = Run(
            id=create_id("run"),
            theme_id=theme.id,
            theme_name=theme.name,
            query=theme.query,
            period_days=theme.period_days,
            period_label=get_period_label(theme.period_days),
            model=model if api_key else NO_X_MODEL,
            query_with_since=digest.query_with_since or f"{theme.query} since:{since_date}",
            since_date=since_date,
            run_date_jst=jst_parts(created_at)["date"],
            created_at=created_at,
            parse_status=digest.parse_status,
            payload=digest.payload,
            raw_text=digest.raw_text,
        )
        self._store.append(run)
        logger.info(
            "run_completed theme=%s run_id=%s parse_status=%s signals=%d",
            theme.id,
            run.id,
            run.parse_status,
            run.payload.coverage.signals,
        )
        return run

    async def run_theme_by_id(self, theme_id: str, themes: Iterable[ThemeSpec], **options: Any) -> Run:
        for theme in themes:
            if theme.id == theme_id:
                return await self.run_theme(theme, **options)
        raise KeyError(f"theme not found: {theme_id}")

    async def run_all_enabled(self, themes: Iterable[ThemeSpec], **options: Any) -> List[Dict[str, Any]]:
        """Run enabled themes one after another; failures are reported, not raised."""
        results: List[Dict[str, Any]] = []
        for theme in themes:
            if not theme.enabled:
                continue
            try:
                run = await self.run_theme(theme, **options)
                results.append({"theme_id": theme.id, "ok": True, "run_id": run.id})
            except Exception as exc:
                logger.exception("run_failed theme=%s error=%s", theme.id, exc)
                results.append({"theme_id": theme.id, "ok": False, "error": str(exc)})
        return results


_DEFAULT_RUNNER: Optional[ThemeRunner] = None


def get_default_runner() -> ThemeRunner:
    global _DEFAULT_RUNNER
    if _DEFAULT_RUNNER is None:
        _DEFAULT_RUNNER = ThemeRunner()
    return _DEFAULT_RUNNER


async def run_theme(theme: ThemeSpec, **options: Any) -> Run:
    return await get_default_runner().run_theme(theme, **options)


async def run_all_enabled_themes(themes: Iterable[ThemeSpec], **options: Any) -> List[Dict[str, Any]]:
    return await get_default_runner().run_all_enabled(themes, **options)
