"""Relevance scoring: source priority, engagement/placement, and recency."""

from __future__ import annotations

from datetime import datetime, timezone
import math
from typing import List, Optional, Sequence

from core import MetricLabel, ScoredSignal, Signal
from utils.timeutils import parse_datetime


PRIORITY_WEIGHT = 4

LIKES_LOG_SCALE = 12.0
LIKES_BOOST_CAP = 40.0
RANK_BASELINE = 30.0
RANK_BOOST_CAP = 24.0
MISSING_RANK = 100.0
FLAT_METRIC_BOOST = 6.0

# (max age in hours, boost), checked in order
RECENCY_STEPS = (
    (12.0, 12.0),
    (24.0, 9.0),
    (72.0, 6.0),
    (168.0, 3.0),
)
STALE_RECENCY_BOOST = 1.0
UNKNOWN_RECENCY_BOOST = 2.0


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def recency_boost(published_at: Optional[str], now: Optional[datetime] = None) -> float:
    published = parse_datetime(published_at)
    if published is None:
        return UNKNOWN_RECENCY_BOOST
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    hours = (current - published).total_seconds() / 3600.0
    for max_hours, boost in RECENCY_STEPS:
        if hours <= max_hours:
            return boost
    return STALE_RECENCY_BOOST


def metric_boost(signal: Signal) -> float:
    if signal.metric_label == MetricLabel.LIKES:
        likes = max(0.0, float(signal.metric_value or 0))
        return _clamp(math.log10(likes + 1) * LIKES_LOG_SCALE, 0.0, LIKES_BOOST_CAP)
    if signal.metric_label == MetricLabel.RANK:
        rank = float(signal.metric_value) if signal.metric_value else MISSING_RANK
        return _clamp(RANK_BASELINE - rank, 0.0, RANK_BOOST_CAP)
    return FLAT_METRIC_BOOST


def score_signal(signal: Signal, now: Optional[datetime] = None) -> float:
    priority = int(signal.source_priority or 1)
    return priority * PRIORITY_WEIGHT + metric_boost(signal) + recency_boost(signal.published_at, now)


def rank_signals(signals: Sequence[Signal], now: Optional[datetime] = None) -> List[ScoredSignal]:
    """Score linked signals and sort by score descending. Equal scores keep input order."""
    scored = [
        ScoredSignal.model_validate({**signal.model_dump(), "score": score_signal(signal, now)})
        for signal in signals
        if signal.url
    ]
    return sorted(scored, key=lambda item: item.score, reverse=True)
