from __future__ import annotations

import asyncio
import functools
from typing import List

import httpx
import pytest

from core import MetricLabel, SourceCategory, SourceDescriptor, SourceKind, SourceStatus, ThemeSpec
from sources import connectors
from sources.collector import (
    collect_single_source,
    collect_theme_signals,
    map_with_concurrency,
    source_timeout,
)
from sources.connectors import CollectContext, make_signal
from utils.exceptions import SourceFetchError


def _source(index: int, kind: SourceKind = SourceKind.GOOGLE_NEWS) -> SourceDescriptor:
    return SourceDescriptor(
        id=f"src_{index}",
        kind=kind,
        name=f"Source {index}",
        category=SourceCategory.INDUSTRY_NEWS,
    )


@pytest.mark.asyncio
async def test_map_with_concurrency_keeps_input_order() -> None:
    delays = [0.03, 0.0, 0.05, 0.01, 0.0]

    async def _mapper(delay: float, index: int) -> int:
        await asyncio.sleep(delay)
        return index

    assert await map_with_concurrency(delays, 2, _mapper) == [0, 1, 2, 3, 4]
    assert await map_with_concurrency([], 4, _mapper) == []


@pytest.mark.asyncio
async def test_map_with_concurrency_caps_in_flight_calls() -> None:
    in_flight = 0
    peak = 0

    async def _mapper(item: int, index: int) -> int:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return item

    await map_with_concurrency(list(range(5)), 2, _mapper)

    assert peak == 2


@pytest.mark.asyncio
async def test_collect_single_source_reports_timeout_and_errors() -> None:
    context = CollectContext(theme=ThemeSpec(name="t"), since_date="2026-10-16", timeout=0.05)

    async def _slow(source, ctx):
        await asyncio.sleep(1)
        return []

    async def _broken(source, ctx):
        raise SourceFetchError("503 Service Unavailable")

    timed_out = await collect_single_source(_source(0), context, adapters={SourceKind.GOOGLE_NEWS: _slow})
    failed = await collect_single_source(_source(1), context, adapters={SourceKind.GOOGLE_NEWS: _broken})
    unsupported = await collect_single_source(_source(2, SourceKind.RSS_DIRECT), context, adapters={})

    assert timed_out.status == SourceStatus.ERROR
    assert timed_out.reason.startswith("timeout>")
    assert failed.status == SourceStatus.ERROR
    assert failed.reason == "503 Service Unavailable"
    assert unsupported.status == SourceStatus.SKIPPED
    assert "unsupported kind" in unsupported.reason


@pytest.mark.asyncio
async def test_collector_preserves_catalog_order_and_caps_concurrency() -> None:
    catalog = [_source(index) for index in range(5)]
    in_flight = 0
    peak = 0

    async def _adapter(source: SourceDescriptor, ctx: CollectContext):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        try:
            index = int(source.id.split("_")[1])
            await asyncio.sleep(0.06 if index == 2 else 0.01)
            if index == 0:
                raise SourceFetchError("boom")
            return [
                make_signal(
                    source,
                    title=f"item {index}",
                    url=f"https://example.com/{index}",
                    metric_label=MetricLabel.MENTIONS,
                    metric_value=1,
                )
            ]
        finally:
            in_flight -= 1

    collection = await collect_theme_signals(
        ThemeSpec(id="t1", name="出版"),
        concurrency=2,
        timeout_ms=1000,
        api_key="",
        enabled_ids=[source.id for source in catalog],
        catalog=catalog,
        adapters={SourceKind.GOOGLE_NEWS: _adapter},
    )

    assert peak <= 2
    assert [stat.source_id for stat in collection.source_stats] == [f"src_{i}" for i in range(5)]
    assert collection.source_stats[0].status == SourceStatus.ERROR
    assert collection.source_stats[0].error == "boom"
    assert [signal.title for signal in collection.signals] == ["item 1", "item 2", "item 3", "item 4"]
    assert collection.total_signals_before_dedupe == 4
    assert collection.source_results_count == 5


@pytest.mark.asyncio
async def test_collector_dedupes_across_sources() -> None:
    catalog = [_source(0), _source(1)]

    async def _adapter(source: SourceDescriptor, ctx: CollectContext) -> List:
        return [make_signal(source, title="shared", url="https://example.com/shared", metric_value=1)]

    collection = await collect_theme_signals(
        ThemeSpec(id="t1", name="出版"),
        api_key="",
        enabled_ids=[source.id for source in catalog],
        catalog=catalog,
        adapters={SourceKind.GOOGLE_NEWS: _adapter},
    )

    assert collection.total_signals_before_dedupe == 2
    assert len(collection.signals) == 1
    assert collection.signals[0].source_id == "src_0"


@pytest.mark.asyncio
async def test_feed_with_html_entities_still_collects_every_item(monkeypatch) -> None:
    rss = """<rss version="2.0"><channel>
      <item><title>新刊&nbsp;フェア開催</title><link>https://pub.example/1</link></item>
      <item><title>編集者Q&A</title><link>https://pub.example/2</link></item>
    </channel></rss>"""

    async def _fake_get_text(url: str, **kwargs) -> str:
        return rss

    monkeypatch.setattr(connectors, "_http_get_text", _fake_get_text)
    source = SourceDescriptor(
        id="pub_feed",
        kind=SourceKind.RSS_DIRECT,
        name="Publisher",
        category=SourceCategory.PRESS_RELEASE,
        url="https://pub.example/rss",
    )
    context = CollectContext(theme=ThemeSpec(name="t"), since_date="2026-10-16")

    result = await collect_single_source(source, context)

    assert result.status == SourceStatus.OK
    assert [signal.title for signal in result.items] == ["新刊 フェア開催", "編集者Q&A"]


class _SlowSocialClient:
    async def search(self, query: str) -> str:
        await asyncio.sleep(0.3)
        return "{}"


@pytest.mark.asyncio
async def test_social_source_gets_its_own_timeout() -> None:
    source = SourceDescriptor(
        id="x_grok",
        kind=SourceKind.X_GROK,
        name="X",
        category=SourceCategory.SOCIAL,
    )
    context = CollectContext(
        theme=ThemeSpec(name="t"),
        since_date="2026-10-16",
        timeout=0.1,
        api_key="k",
        social_client=_SlowSocialClient(),
        social_timeout=5.0,
    )

    result = await collect_single_source(source, context)

    assert result.status == SourceStatus.OK
    assert source_timeout(source, context) == 5.0
    assert source_timeout(_source(0), context) == 0.1
    assert source_timeout(source, CollectContext(theme=ThemeSpec(name="t"), since_date="", timeout=0.1)) == 0.1


@pytest.mark.asyncio
async def test_http_error_status_becomes_source_error(monkeypatch) -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(503, text="down"))
    monkeypatch.setattr(
        connectors,
        "_http_get_text",
        functools.partial(connectors._http_get_text, transport=transport),
    )
    context = CollectContext(theme=ThemeSpec(name="t"), since_date="2026-10-16")

    result = await collect_single_source(_source(0), context)

    assert result.status == SourceStatus.ERROR
    assert result.reason == "503 Service Unavailable"
