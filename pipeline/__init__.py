"""Dedup, scoring, clustering and digest assembly."""

from .clustering import STOP_WORDS, build_clusters, build_themes, build_token_stats, pick_keyphrases, tokenize
from .dedup import dedup_key, dedupe_signals
from .digest import build_coverage, build_materials, build_trend_payload, post_from_signal
from .scoring import metric_boost, rank_signals, recency_boost, score_signal

__all__ = [
    "STOP_WORDS",
    "build_clusters",
    "build_coverage",
    "build_materials",
    "build_themes",
    "build_token_stats",
    "build_trend_payload",
    "dedup_key",
    "dedupe_signals",
    "metric_boost",
    "pick_keyphrases",
    "post_from_signal",
    "rank_signals",
    "recency_boost",
    "score_signal",
    "tokenize",
]
