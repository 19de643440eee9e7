"""Token statistics, theme tags and token-anchored clusters over scored signals."""

from __future__ import annotations

from dataclasses import dataclass, field
import re
from typing import Callable, Dict, List, Sequence

from core import Cluster, Post, ScoredSignal


FALLBACK_CLUSTER_NAME = "主要トピック"
CLUSTER_NAME_CHARS = 12
MIN_CLUSTER_COUNT = 2
CLUSTER_POSTS = 3
CLUSTER_KEYPHRASES = 4
COUNT_WEIGHT = 5

_TOKEN_RE = re.compile(r"[a-z0-9]{3,}|[一-龠ぁ-んァ-ヶー]{2,}")

STOP_WORDS = frozenset(
    {
        "こと",
        "これ",
        "それ",
        "ため",
        "よう",
        "から",
        "まで",
        "について",
        "および",
        "など",
        "する",
        "した",
        "いる",
        "ある",
        "れる",
        "より",
        "として",
        "the",
        "and",
        "with",
        "from",
        "this",
        "that",
        "news",
        "google",
        "times",
        "pr",
        "jp",
    }
)


@dataclass
class TokenStat:
    token: str
    count: int = 0
    score: float = 0.0
    item_indexes: List[int] = field(default_factory=list)

    @property
    def weight(self) -> float:
        return self.count * COUNT_WEIGHT + self.score


def tokenize(text: str) -> List[str]:
    tokens = _TOKEN_RE.findall(str(text or "").lower())
    return [token for token in tokens if token not in STOP_WORDS and not token.isdigit()]


def build_token_stats(signals: Sequence[ScoredSignal]) -> List[TokenStat]:
    """Per-token document count, score sum and member indexes, heaviest first."""
    stats: Dict[str, TokenStat] = {}
    for index, signal in enumerate(signals):
        # dict.fromkeys keeps first-occurrence order while removing repeats
        for token in dict.fromkeys(tokenize(f"{signal.title} {signal.summary}")):
            row = stats.setdefault(token, TokenStat(token=token))
            row.count += 1
            row.score += float(signal.score or 0)
            row.item_indexes.append(index)
    return sorted(stats.values(), key=lambda row: row.weight, reverse=True)


def build_themes(signals: Sequence[ScoredSignal], limit: int = 10) -> List[str]:
    return [row.token for row in build_token_stats(signals)[:limit]]


def pick_keyphrases(signals: Sequence[ScoredSignal], limit: int = CLUSTER_KEYPHRASES) -> List[str]:
    return [row.token for row in build_token_stats(signals)[:limit]]


def build_clusters(
    signals: Sequence[ScoredSignal],
    to_post: Callable[[ScoredSignal], Post],
    max_clusters: int = 5,
) -> List[Cluster]:
    """Group signals under their strongest shared tokens.

    A token qualifies when at least two signals contain it. Each cluster takes
    the token's three best-scored members and is skipped when every one of them
    already belongs to an earlier cluster. With no qualifying token, the top
    three signals form a single unnamed-topic cluster.
    """
    clusters: List[Cluster] = []
    used = set()

    for row in build_token_stats(signals):
        if len(clusters) >= max_clusters:
            break
        if row.count < MIN_CLUSTER_COUNT:
            continue

        member_indexes = sorted(row.item_indexes, key=lambda idx: signals[idx].score, reverse=True)[:CLUSTER_POSTS]
        if not member_indexes:
            continue
        if all(idx in used for idx in member_indexes):
            continue
        used.update(member_indexes)

        members = [signals[idx] for idx in member_indexes]
        clusters.append(
            Cluster(
                name=row.token[:CLUSTER_NAME_CHARS],
                keyphrases=pick_keyphrases(members),
                posts=[to_post(signal) for signal in members],
            )
        )

    if clusters:
        return clusters

    fallback = [to_post(signal) for signal in signals[:CLUSTER_POSTS]]
    if not fallback:
        return []
    return [Cluster(name=FALLBACK_CLUSTER_NAME, keyphrases=[], posts=fallback)]
