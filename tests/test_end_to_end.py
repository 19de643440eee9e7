from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from core import MetricLabel, SourceCategory, SourceDescriptor, SourceKind, SourceResult, SourceStatus, ThemeSpec
from pipeline.digest import build_trend_payload
from sources.collector import collect_theme_signals
from sources.connectors import CollectContext, make_signal
from utils.exceptions import SourceFetchError


NOW = datetime(2026, 10, 18, 3, 0, tzinfo=timezone.utc)
THEME = ThemeSpec(id="publishing", name="出版", query="出版 新刊", period_days=2)

FEED = SourceDescriptor(
    id="feed_news",
    kind=SourceKind.RSS_DIRECT,
    name="Feed",
    category=SourceCategory.INDUSTRY_NEWS,
    priority=4,
    url="https://feed.example/rss",
)
RANKING = SourceDescriptor(
    id="store_ranking",
    kind=SourceKind.TOHAN_BESTSELLER,
    name="Ranking",
    category=SourceCategory.RANKING,
    priority=4,
    url="https://store.example/ranking",
)
SOCIAL = SourceDescriptor(
    id="x_grok_social",
    kind=SourceKind.X_GROK,
    name="X",
    category=SourceCategory.SOCIAL,
    priority=5,
)


async def _feed(source: SourceDescriptor, ctx: CollectContext):
    return [
        make_signal(
            source,
            title=f"出版ニュース {index}",
            url=f"https://feed.example/{index}",
            published_at=(NOW - timedelta(hours=6 * (index + 1))).isoformat(),
            metric_label=MetricLabel.MENTIONS,
            metric_value=1,
        )
        for index in range(2)
    ]


async def _ranking(source: SourceDescriptor, ctx: CollectContext):
    # ranks 1 and 2 point at the same product page
    urls = ["https://store.example/p/1", "https://store.example/p/1", "https://store.example/p/3"]
    return [
        make_signal(source, title=f"売れ筋 {rank}", url=url, metric_label=MetricLabel.RANK, metric_value=rank)
        for rank, url in enumerate(urls, start=1)
    ]


async def _social(source: SourceDescriptor, ctx: CollectContext):
    signal = make_signal(
        source,
        title="話題の投稿",
        summary="話題の投稿",
        url="https://x.com/i/status/500",
        metric_label=MetricLabel.LIKES,
        metric_value=500,
    )
    return SourceResult(
        source=source,
        status=SourceStatus.OK,
        items=[signal],
        meta={"query_with_since": "出版 since:2026-10-11", "parse_status": "ok"},
    )


async def _timeout(source: SourceDescriptor, ctx: CollectContext):
    raise SourceFetchError("timeout")


ADAPTERS = {
    SourceKind.RSS_DIRECT: _feed,
    SourceKind.TOHAN_BESTSELLER: _ranking,
    SourceKind.X_GROK: _social,
}


async def _digest(catalog, adapters):
    collection = await collect_theme_signals(
        THEME,
        concurrency=2,
        timeout_ms=1000,
        api_key="",
        enabled_ids=[source.id for source in catalog],
        catalog=catalog,
        adapters=adapters,
        now=NOW,
    )
    return collection, build_trend_payload(THEME, collection, now=NOW)


@pytest.mark.asyncio
async def test_three_sources_social_item_ranks_first() -> None:
    collection, digest = await _digest([FEED, RANKING, SOCIAL], ADAPTERS)
    payload = digest.payload

    assert collection.total_signals_before_dedupe == 6
    assert payload.coverage.source_ok == 3
    assert payload.coverage.before_dedupe == 6
    assert payload.coverage.signals == 6
    assert payload.coverage.duplicate_drop == 0
    assert payload.materials[0].url == "https://x.com/i/status/500"
    assert payload.materials[0].likes == 500
    assert [post.url for post in payload.materials].count("https://store.example/p/1") == 2
    assert digest.parse_status == "ok"
    assert digest.query_with_since == "出版 since:2026-10-11"
    assert payload.period_label == "直近2日"


@pytest.mark.asyncio
async def test_failing_source_does_not_block_siblings() -> None:
    adapters = dict(ADAPTERS)
    adapters[SourceKind.TOHAN_BESTSELLER] = _timeout

    collection, digest = await _digest([FEED, RANKING, SOCIAL], adapters)
    stats = {stat.source_id: stat for stat in digest.payload.source_stats}

    assert stats["store_ranking"].status == SourceStatus.ERROR
    assert stats["store_ranking"].count == 0
    assert stats["store_ranking"].error == "timeout"
    assert stats["feed_news"].count == 2
    assert stats["x_grok_social"].count == 1
    assert len(digest.payload.materials) == 3
    assert digest.payload.coverage.source_error == 1


@pytest.mark.asyncio
async def test_empty_catalog_yields_well_formed_empty_digest() -> None:
    collection, digest = await _digest([], ADAPTERS)

    assert digest.parse_status == "no_signals"
    assert digest.payload.materials == []
    assert digest.payload.clusters == []
    assert digest.payload.coverage.source_total == 0
    assert digest.query_with_since == f"出版 新刊 source-window:{collection.since_date}..today"


@pytest.mark.asyncio
async def test_social_fallback_flag_surfaces_in_parse_status() -> None:
    async def _fallback_social(source: SourceDescriptor, ctx: CollectContext):
        result = await _social(source, ctx)
        result.meta = {**result.meta, "parse_status": "fallback_text", "raw_text": "free text"}
        return result

    adapters = dict(ADAPTERS)
    adapters[SourceKind.X_GROK] = _fallback_social

    _, digest = await _digest([FEED, SOCIAL], adapters)

    assert digest.parse_status == "ok_with_x_fallback"
    assert digest.raw_text == "free text"
