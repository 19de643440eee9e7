from __future__ import annotations

from core import MetricLabel, ScoredSignal, SourceCategory, SourceKind, SourceStat, SourceStatus, CostTier
from pipeline.clustering import build_clusters, build_themes, build_token_stats, tokenize
from pipeline.digest import build_coverage, build_materials, post_from_signal


def _scored(signal_id: str, title: str, score: float, *, summary: str = "") -> ScoredSignal:
    return ScoredSignal(
        id=signal_id,
        source_id="src",
        source_name="test",
        source_category=SourceCategory.INDUSTRY_NEWS,
        source_kind=SourceKind.GOOGLE_NEWS,
        title=title,
        summary=summary,
        url=f"https://example.com/{signal_id}",
        metric_label=MetricLabel.MENTIONS,
        metric_value=1,
        score=score,
    )


def _stat(source_id: str, status: SourceStatus) -> SourceStat:
    return SourceStat(
        source_id=source_id,
        source_name=source_id,
        category=SourceCategory.INDUSTRY_NEWS,
        status=status,
        cost_tier=CostTier.FREE,
    )


def test_tokenize_drops_stop_words_digits_and_short_runs() -> None:
    tokens = tokenize("Google News 新刊 the 2024 AI bookstore が")
    assert tokens == ["新刊", "bookstore"]


def test_token_stats_count_each_signal_once() -> None:
    signals = [
        _scored("a", "bookstore bookstore", 10),
        _scored("b", "bookstore", 5),
    ]

    stats = {row.token: row for row in build_token_stats(signals)}

    assert stats["bookstore"].count == 2
    assert stats["bookstore"].score == 15
    assert stats["bookstore"].item_indexes == [0, 1]


def test_themes_rank_by_frequency_then_score() -> None:
    signals = [
        _scored("a", "alpha gamma", 50),
        _scored("b", "beta gamma", 1),
        _scored("c", "beta delta", 1),
    ]
    # gamma: 2*5+51, beta: 2*5+2, alpha: 5+50
    assert build_themes(signals, limit=3) == ["gamma", "alpha", "beta"]


def test_clusters_require_two_signals_per_token() -> None:
    signals = [
        _scored("a", "bestseller ranking", 30),
        _scored("b", "bestseller award", 20),
        _scored("c", "unrelated topic", 10),
    ]

    clusters = build_clusters(signals, post_from_signal)
    stats = {row.token: row for row in build_token_stats(signals)}

    assert [cluster.name for cluster in clusters] == ["bestseller"]
    for cluster in clusters:
        assert stats[cluster.name].count >= 2
    assert [post.url for post in clusters[0].posts] == ["https://example.com/a", "https://example.com/b"]
    assert clusters[0].keyphrases[0] == "bestseller"


def test_clusters_skip_candidates_with_only_used_members() -> None:
    signals = [
        _scored("a", "alpha beta", 10),
        _scored("b", "alpha beta", 9),
        _scored("c", "gamma", 1),
    ]

    clusters = build_clusters(signals, post_from_signal)

    assert [cluster.name for cluster in clusters] == ["alpha"]
    assert clusters[0].keyphrases == ["alpha", "beta"]


def test_cluster_name_is_truncated_and_count_capped() -> None:
    long_token = "supercalifragilistic"
    signals = [_scored(f"s{i}", f"{long_token} t{i}x0 t{i}x1", 10 - i) for i in range(2)]

    clusters = build_clusters(signals, post_from_signal, max_clusters=5)

    assert clusters[0].name == long_token[:12]


def test_fallback_cluster_when_no_token_repeats() -> None:
    signals = [
        _scored("a", "alpha story", 9),
        _scored("b", "gamma tale", 8),
    ]

    clusters = build_clusters(signals, post_from_signal)

    assert len(clusters) == 1
    assert clusters[0].name == "主要トピック"
    assert clusters[0].keyphrases == []
    assert len(clusters[0].posts) == 2


def test_no_signals_no_clusters() -> None:
    assert build_clusters([], post_from_signal) == []


def test_materials_are_capped() -> None:
    signals = [_scored(f"s{i}", f"title {i}", 100 - i) for i in range(25)]
    materials = build_materials(signals)
    assert len(materials) == 20
    assert materials[0].url == "https://example.com/s0"


def test_coverage_arithmetic_never_negative() -> None:
    stats = [
        _stat("a", SourceStatus.OK),
        _stat("b", SourceStatus.ERROR),
        _stat("c", SourceStatus.SKIPPED),
        _stat("d", SourceStatus.OK),
    ]

    coverage = build_coverage(stats, 4, 6)
    assert coverage.source_total == 4
    assert (coverage.source_ok, coverage.source_error, coverage.source_skipped) == (2, 1, 1)
    assert coverage.duplicate_drop == coverage.before_dedupe - coverage.signals == 2

    assert build_coverage([], 5, 3).duplicate_drop == 0


def test_post_uses_camel_case_aliases() -> None:
    post = post_from_signal(_scored("a", "title", 1))
    dumped = post.model_dump(by_alias=True)
    assert "metricLabel" in dumped and "sourceName" in dumped
    assert dumped["likes"] == 0.0
