"""Assemble the digest payload from one collection run."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence

from core import (
    CollectionResult,
    Coverage,
    Digest,
    DigestPayload,
    MetricLabel,
    Post,
    ScoredSignal,
    SourceStat,
    SourceStatus,
    ThemeSpec,
)
from pipeline.clustering import build_clusters, build_themes
from pipeline.scoring import rank_signals
from utils.timeutils import get_period_label, to_iso_or_none


PARSE_STATUS_OK = "ok"
PARSE_STATUS_NO_SIGNALS = "no_signals"
PARSE_STATUS_X_FALLBACK = "ok_with_x_fallback"

MATERIALS_LIMIT = 20


def post_from_signal(signal: ScoredSignal) -> Post:
    value = float(signal.metric_value or 0)
    return Post(
        url=signal.url,
        title=signal.title,
        summary=signal.summary,
        likes=value if signal.metric_label == MetricLabel.LIKES else 0.0,
        metric_label=signal.metric_label,
        metric_value=value,
        source_name=signal.source_name,
        source_category=signal.source_category.value,
        published_at=to_iso_or_none(signal.published_at),
    )


def build_materials(signals: Sequence[ScoredSignal], limit: int = MATERIALS_LIMIT) -> List[Post]:
    return [post_from_signal(signal) for signal in signals[:limit]]


def build_coverage(source_stats: Sequence[SourceStat], signal_count: int, before_dedupe: int) -> Coverage:
    return Coverage(
        source_total=len(source_stats),
        source_ok=sum(1 for stat in source_stats if stat.status == SourceStatus.OK),
        source_error=sum(1 for stat in source_stats if stat.status == SourceStatus.ERROR),
        source_skipped=sum(1 for stat in source_stats if stat.status == SourceStatus.SKIPPED),
        signals=signal_count,
        before_dedupe=before_dedupe,
        duplicate_drop=max(0, before_dedupe - signal_count),
    )


def build_trend_payload(
    theme: ThemeSpec,
    collection: CollectionResult,
    *,
    now: Optional[datetime] = None,
) -> Digest:
    """Score, cluster and summarize `collection` into a `Digest`.

    Zero surviving signals is a valid outcome reported as `no_signals`.
    """
    scored = rank_signals(collection.signals, now=now)
    before_dedupe = collection.total_signals_before_dedupe or len(scored)
    social = collection.social_meta

    if not scored:
        parse_status = PARSE_STATUS_NO_SIGNALS
    elif social is not None and social.parse_status == "fallback_text":
        parse_status = PARSE_STATUS_X_FALLBACK
    else:
        parse_status = PARSE_STATUS_OK

    query_with_since = (social.query_with_since if social is not None else "") or (
        f"{theme.search_text} source-window:{collection.since_date}..today"
    )

    payload = DigestPayload(
        clusters=build_clusters(scored, post_from_signal),
        themes=build_themes(scored),
        materials=build_materials(scored),
        source_stats=list(collection.source_stats),
        coverage=build_coverage(collection.source_stats, len(scored), before_dedupe),
        period_label=get_period_label(theme.period_days),
    )
    return Digest(
        parse_status=parse_status,
        query_with_since=query_with_since,
        raw_text=social.raw_text if social is not None else "",
        payload=payload,
    )
