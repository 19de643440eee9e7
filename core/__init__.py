"""Core contracts and shared types for the signal digest pipeline."""

from .contracts import (
    CollectionResult,
    CostTier,
    Cluster,
    Coverage,
    Digest,
    DigestPayload,
    MetricLabel,
    Post,
    Run,
    ScoredSignal,
    Signal,
    SocialMeta,
    SourceCategory,
    SourceDescriptor,
    SourceKind,
    SourceResult,
    SourceStat,
    SourceStatus,
    ThemeSpec,
)

__all__ = [
    "CollectionResult",
    "CostTier",
    "Cluster",
    "Coverage",
    "Digest",
    "DigestPayload",
    "MetricLabel",
    "Post",
    "Run",
    "ScoredSignal",
    "Signal",
    "SocialMeta",
    "SourceCategory",
    "SourceDescriptor",
    "SourceKind",
    "SourceResult",
    "SourceStat",
    "SourceStatus",
    "ThemeSpec",
]
