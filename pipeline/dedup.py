"""Merge duplicate signals collected from different sources."""

from __future__ import annotations

from typing import Dict, List, Sequence

from core import Signal, SourceCategory


PRIORITY_WEIGHT = 3


def dedup_key(signal: Signal) -> str:
    """`u:<url>` when the signal has a URL, else `t:<lowercased title>`; "" when neither."""
    url = str(signal.url or "").strip()
    if url:
        return f"u:{url}"
    title = str(signal.title or "").strip().lower()
    if title:
        return f"t:{title}"
    return ""


def dedup_weight(signal: Signal) -> float:
    return float(signal.metric_value or 0) + int(signal.source_priority or 1) * PRIORITY_WEIGHT


def dedupe_signals(signals: Sequence[Signal]) -> List[Signal]:
    """Collapse duplicates outside the ranking category.

    Ranking signals legitimately repeat across stores and are all kept, after
    the merged non-ranking ones. On a key collision the signal with the higher
    weight wins; ties keep the first seen.
    """
    ranking: List[Signal] = []
    kept: Dict[str, Signal] = {}

    for signal in signals:
        if signal.source_category == SourceCategory.RANKING:
            ranking.append(signal)
            continue
        key = dedup_key(signal)
        if not key:
            continue
        current = kept.get(key)
        if current is None or dedup_weight(signal) > dedup_weight(current):
            kept[key] = signal

    return [*kept.values(), *ranking]
