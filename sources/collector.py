"""Bounded-concurrency collection over the source catalog."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from time import perf_counter
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, TypeVar

from config import get_collector_settings, get_xai_settings
from core import (
    CollectionResult,
    SocialMeta,
    SourceDescriptor,
    SourceKind,
    SourceResult,
    SourceStat,
    SourceStatus,
    ThemeSpec,
)
from intelligence.xai_search import XSearchClient
from pipeline.dedup import dedupe_signals
from sources.catalog import SOURCE_MODE_ALL, get_source_catalog
from sources.connectors import ADAPTERS, Adapter, CollectContext
from utils.timeutils import get_since_date


logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def map_with_concurrency(
    items: Sequence[T],
    concurrency: int,
    mapper: Callable[[T, int], Awaitable[R]],
) -> List[R]:
    """Apply `mapper` with at most `concurrency` calls in flight; results keep input order."""
    total = len(items)
    if total == 0:
        return []

    limit = max(1, min(int(concurrency or 1), total))
    results: List[Optional[R]] = [None] * total
    cursor = 0

    async def worker() -> None:
        nonlocal cursor
        while cursor < total:
            # claim and advance without yielding to the loop
            index = cursor
            cursor += 1
            results[index] = await mapper(items[index], index)

    await asyncio.gather(*(worker() for _ in range(limit)))
    return results  # type: ignore[return-value]


def source_timeout(source: SourceDescriptor, context: CollectContext) -> float:
    """Seconds allowed for one adapter call; the social source may run longer."""
    if source.kind == SourceKind.X_GROK and context.social_timeout:
        return max(context.timeout, float(context.social_timeout))
    return context.timeout


async def collect_single_source(
    source: SourceDescriptor,
    context: CollectContext,
    *,
    adapters: Optional[Mapping[SourceKind, Adapter]] = None,
) -> SourceResult:
    """Run one adapter under its timeout. Always returns a result, never raises."""
    registry = ADAPTERS if adapters is None else adapters
    started = perf_counter()
    timeout = source_timeout(source, context)

    adapter = registry.get(source.kind)
    if adapter is None:
        result = SourceResult(
            source=source,
            status=SourceStatus.SKIPPED,
            meta={"reason": f"unsupported kind: {source.kind.value}"},
        )
    else:
        try:
            outcome = await asyncio.wait_for(adapter(source, context), timeout=timeout)
            if isinstance(outcome, SourceResult):
                result = outcome
            else:
                result = SourceResult(source=source, status=SourceStatus.OK, items=list(outcome or []))
        except asyncio.TimeoutError:
            result = SourceResult(
                source=source,
                status=SourceStatus.ERROR,
                meta={"reason": f"timeout>{timeout:.1f}s"},
            )
        except Exception as exc:
            result = SourceResult(
                source=source,
                status=SourceStatus.ERROR,
                meta={"reason": str(exc) or exc.__class__.__name__},
            )

    result.duration_ms = int((perf_counter() - started) * 1000)
    logger.info(
        "source_done id=%s status=%s count=%d duration_ms=%d%s",
        source.id,
        result.status.value,
        len(result.items),
        result.duration_ms,
        f" reason={result.reason}" if result.reason else "",
    )
    return result


def _source_stat(result: SourceResult) -> SourceStat:
    return SourceStat(
        source_id=result.source.id,
        source_name=result.source.name,
        category=result.source.category,
        status=result.status,
        cost_tier=result.source.cost_tier,
        count=len(result.items),
        duration_ms=result.duration_ms,
        error=result.reason,
    )


def _social_meta(results: Sequence[SourceResult]) -> Optional[SocialMeta]:
    for result in results:
        if result.source.kind == SourceKind.X_GROK and result.status == SourceStatus.OK and result.meta:
            return SocialMeta.model_validate(result.meta)
    return None


async def collect_theme_signals(
    theme: ThemeSpec,
    *,
    mode: str = SOURCE_MODE_ALL,
    concurrency: Optional[int] = None,
    timeout_ms: Optional[int] = None,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    enabled_ids: Optional[Sequence[str]] = None,
    catalog: Optional[Sequence[SourceDescriptor]] = None,
    adapters: Optional[Dict[SourceKind, Adapter]] = None,
    now: Optional[datetime] = None,
) -> CollectionResult:
    """Fetch every eligible source for `theme`, flatten in catalog order and dedupe.

    Explicit arguments override the collector/xAI settings. `catalog` and
    `adapters` replace the built-in registry (used by callers embedding their
    own sources).
    """
    collector_settings = get_collector_settings()
    xai_settings = get_xai_settings()

    since_date = get_since_date(theme.period_days, now=now)
    allow_list = set(enabled_ids) if enabled_ids is not None else collector_settings.enabled_id_set()
    sources = get_source_catalog(
        mode,
        enabled_ids=allow_list,
        include_social=collector_settings.enable_x,
        catalog=catalog,
    )

    effective_timeout_ms = timeout_ms if timeout_ms is not None else collector_settings.http_timeout_ms
    effective_key = (xai_settings.api_key or "") if api_key is None else api_key
    effective_model = model or xai_settings.model
    context = CollectContext(
        theme=theme,
        since_date=since_date,
        timeout=max(0.001, float(effective_timeout_ms) / 1000.0),
        api_key=effective_key,
        model=effective_model,
        max_response_bytes=collector_settings.max_response_bytes,
        user_agent=collector_settings.user_agent,
        social_client=(
            XSearchClient(
                effective_key,
                effective_model,
                base_url=xai_settings.base_url,
                timeout=xai_settings.timeout,
            )
            if effective_key
            else None
        ),
        social_timeout=xai_settings.timeout,
        now=now,
    )

    logger.info(
        "collect_start theme=%s sources=%d mode=%s since=%s",
        theme.id,
        len(sources),
        mode,
        since_date,
    )

    async def _run(source: SourceDescriptor, _index: int) -> SourceResult:
        return await collect_single_source(source, context, adapters=adapters)

    results = await map_with_concurrency(
        sources,
        concurrency if concurrency is not None else collector_settings.concurrency,
        _run,
    )

    flattened = [signal for result in results for signal in result.items]
    deduped = dedupe_signals(flattened)
    logger.info(
        "collect_done theme=%s before_dedupe=%d signals=%d",
        theme.id,
        len(flattened),
        len(deduped),
    )
    return CollectionResult(
        since_date=since_date,
        source_stats=[_source_stat(result) for result in results],
        signals=deduped,
        source_results_count=len(results),
        total_signals_before_dedupe=len(flattened),
        social_meta=_social_meta(results),
    )
