from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from core import MetricLabel, Run, SourceCategory, SourceDescriptor, SourceKind, ThemeSpec
from orchestrator.service import NO_X_MODEL, ThemeRunner
from orchestrator.store import InMemoryRunStore
from sources.connectors import CollectContext, make_signal
from utils.exceptions import RunAlreadyInProgressError


NOW = datetime(2026, 10, 18, 3, 0, tzinfo=timezone.utc)

CATALOG = [
    SourceDescriptor(
        id="feed_news",
        kind=SourceKind.RSS_DIRECT,
        name="Feed",
        category=SourceCategory.INDUSTRY_NEWS,
        priority=3,
    )
]


async def _feed(source: SourceDescriptor, ctx: CollectContext):
    return [
        make_signal(
            source,
            title="出版社の新刊情報",
            url="https://feed.example/1",
            metric_label=MetricLabel.MENTIONS,
            metric_value=1,
        )
    ]


def _options(**overrides):
    options = {
        "api_key": "",
        "catalog": CATALOG,
        "enabled_ids": [source.id for source in CATALOG],
        "adapters": {SourceKind.RSS_DIRECT: _feed},
        "now": NOW,
    }
    options.update(overrides)
    return options


@pytest.mark.asyncio
async def test_run_theme_builds_and_stores_run() -> None:
    store = InMemoryRunStore()
    runner = ThemeRunner(store=store)
    theme = ThemeSpec(id="pub", name="出版", query="出版 新刊", period_days=7)

    run = await runner.run_theme(theme, **_options())

    assert run.id.startswith("run_")
    assert run.model == NO_X_MODEL
    assert run.period_label == "直近1週間"
    assert run.run_date_jst == "2026-10-18"
    assert run.since_date == "2026-10-11"
    assert run.parse_status == "ok"
    assert run.payload.coverage.signals == 1
    assert store.latest("pub").id == run.id
    assert not runner.is_running("pub")

    dumped = run.model_dump(mode="json", by_alias=True)
    assert dumped["themeId"] == "pub"
    assert dumped["payload"]["sourceStats"][0]["sourceId"] == "feed_news"


@pytest.mark.asyncio
async def test_second_run_for_same_theme_is_rejected() -> None:
    runner = ThemeRunner()
    theme = ThemeSpec(id="pub", name="出版")
    release = asyncio.Event()

    async def _blocking(source: SourceDescriptor, ctx: CollectContext):
        await release.wait()
        return await _feed(source, ctx)

    options = _options(adapters={SourceKind.RSS_DIRECT: _blocking})
    first = asyncio.create_task(runner.run_theme(theme, **options))
    await asyncio.sleep(0.01)

    assert runner.is_running("pub")
    with pytest.raises(RunAlreadyInProgressError):
        await runner.run_theme(theme, **options)

    # another theme is not blocked
    other = await runner.run_theme(ThemeSpec(id="other", name="書店"), **_options())
    assert other.theme_id == "other"

    release.set()
    run = await first
    assert run.theme_id == "pub"
    assert not runner.is_running("pub")


@pytest.mark.asyncio
async def test_failed_run_releases_theme() -> None:
    runner = ThemeRunner()
    theme = ThemeSpec(id="pub", name="出版")

    with pytest.raises(TypeError):
        await runner.run_theme(theme, **_options(unknown_option=True))

    assert not runner.is_running("pub")


@pytest.mark.asyncio
async def test_run_all_enabled_runs_sequentially_and_captures_failures() -> None:
    runner = ThemeRunner()
    themes = [
        ThemeSpec(id="a", name="A"),
        ThemeSpec(id="b", name="B", enabled=False),
        ThemeSpec(id="c", name="C"),
    ]

    results = await runner.run_all_enabled(themes, **_options())

    assert [result["theme_id"] for result in results] == ["a", "c"]
    assert all(result["ok"] for result in results)
    assert len(runner.store.list()) == 2


@pytest.mark.asyncio
async def test_run_theme_by_id_unknown_theme() -> None:
    with pytest.raises(KeyError):
        await ThemeRunner().run_theme_by_id("missing", [ThemeSpec(id="a", name="A")])


def test_store_lists_newest_first_and_caps_history() -> None:
    store = InMemoryRunStore(max_runs_per_theme=2)
    for index in range(3):
        store.append(
            Run(
                id=f"run_{index}",
                theme_id="pub",
                theme_name="出版",
                created_at=NOW + timedelta(minutes=index),
            )
        )

    assert [run.id for run in store.list("pub")] == ["run_2", "run_1"]
    assert store.latest("pub").id == "run_2"
    assert store.latest("missing") is None
    assert store.list("pub", limit=1)[0].id == "run_2"
