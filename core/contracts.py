"""Canonical data contracts for the signal collection and digest pipeline."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class SourceKind(str, Enum):
    """Fetch adapter type for a catalog entry."""

    GOOGLE_NEWS = "google_news"
    RSS_DIRECT = "rss_direct"
    RSS_RANKING = "rss_ranking"
    AMAZON_BESTSELLER = "amazon_bestseller"
    TOHAN_BESTSELLER = "tohan_bestseller"
    HONTO_BESTSELLER = "honto_bestseller"
    YURINDO_BESTSELLER = "yurindo_bestseller"
    RAKUTEN_BESTSELLER = "rakuten_bestseller"
    YAHOO_FOLLOW = "yahoo_follow"
    KINSERI_DEALS = "kinseri_deals"
    X_GROK = "x_grok"


class SourceCategory(str, Enum):
    """Editorial category of a source."""

    INDUSTRY_NEWS = "industry_news"
    PRESS_RELEASE = "press_release"
    BOOK_REVIEW = "book_review"
    NEW_RELEASE = "new_release"
    PERSONNEL = "personnel"
    PUBLICITY_TV = "publicity_tv"
    PUBLICITY_RADIO = "publicity_radio"
    RETAIL = "retail"
    DIGITAL = "digital"
    SUPPLY_CHAIN = "supply_chain"
    EDUCATION = "education"
    IP = "ip"
    AWARDS = "awards"
    RANKING = "ranking"
    DEALS = "deals"
    SOCIAL = "social"


class CostTier(str, Enum):
    FREE = "free"
    API = "api"


class MetricLabel(str, Enum):
    """Semantics of `Signal.metric_value`."""

    LIKES = "likes"
    RANK = "rank"
    MENTIONS = "mentions"
    SCORE = "score"
    NONE = ""


class SourceStatus(str, Enum):
    """Per-source outcome of one collection run."""

    OK = "ok"
    ERROR = "error"
    SKIPPED = "skipped"
    CACHED = "cached"


class _CamelModel(BaseModel):
    """Base for records that leave the core (dashboard payload uses camelCase)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SourceDescriptor(BaseModel):
    """Immutable catalog entry describing one fetch target."""

    model_config = ConfigDict(frozen=True)

    id: str
    kind: SourceKind
    name: str
    category: SourceCategory
    cost_tier: CostTier = CostTier.FREE
    priority: int = 1
    item_limit: int = 8
    url: Optional[str] = None
    urls: Tuple[str, ...] = ()
    query_template: Optional[str] = None
    max_age_days: Optional[int] = None

    @field_validator("id", "name", mode="before")
    @classmethod
    def _non_empty_text(cls, value: Any) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("value is required")
        return text


class ThemeSpec(BaseModel):
    """Topic a run collects signals for."""

    id: str = "default"
    name: str
    query: str = ""
    period_days: int = 2
    enabled: bool = True

    @field_validator("period_days", mode="before")
    @classmethod
    def _positive_days(cls, value: Any) -> int:
        try:
            return max(1, int(value))
        except (TypeError, ValueError):
            return 2

    @property
    def search_text(self) -> str:
        return str(self.query or self.name or "").strip()


class Signal(BaseModel):
    """One normalized unit of content produced by a fetch adapter."""

    model_config = ConfigDict(frozen=True)

    id: str
    source_id: str
    source_name: str
    source_category: SourceCategory
    source_kind: SourceKind
    source_priority: int = 1
    title: str = ""
    summary: str = ""
    url: str = ""
    published_at: Optional[str] = None
    metric_label: MetricLabel = MetricLabel.SCORE
    metric_value: float = 0.0
    likes: float = 0.0
    cover_image_url: Optional[str] = None


class ScoredSignal(Signal):
    """Signal plus its derived relevance score."""

    score: float = 0.0


class Post(_CamelModel):
    """Post-like record used for cluster members and the materials list."""

    url: str = ""
    title: str = ""
    summary: str = ""
    likes: float = 0.0
    metric_label: MetricLabel = MetricLabel.SCORE
    metric_value: float = 0.0
    source_name: str = ""
    source_category: str = ""
    published_at: Optional[str] = None


class Cluster(_CamelModel):
    name: str
    keyphrases: List[str] = Field(default_factory=list)
    posts: List[Post] = Field(default_factory=list)


class SourceStat(_CamelModel):
    """Per-source run outcome, one per catalog entry."""

    source_id: str
    source_name: str
    category: SourceCategory
    status: SourceStatus
    cost_tier: CostTier
    count: int = 0
    duration_ms: int = 0
    error: str = ""


class Coverage(_CamelModel):
    source_total: int = 0
    source_ok: int = 0
    source_error: int = 0
    source_skipped: int = 0
    signals: int = 0
    before_dedupe: int = 0
    duplicate_drop: int = 0


class SocialMeta(BaseModel):
    """Diagnostics surfaced by the social-search adapter."""

    query_with_since: str = ""
    parse_status: str = "ok"
    clusters: List[Dict[str, Any]] = Field(default_factory=list)
    themes: List[str] = Field(default_factory=list)
    editorial_summary: str = ""
    raw_text: str = ""


class SourceResult(BaseModel):
    """Structured outcome of one adapter invocation. Always produced, never raised."""

    source: SourceDescriptor
    status: SourceStatus
    items: List[Signal] = Field(default_factory=list)
    meta: Dict[str, Any] = Field(default_factory=dict)
    duration_ms: int = 0

    @property
    def reason(self) -> str:
        return str(self.meta.get("reason") or "")


class CollectionResult(BaseModel):
    since_date: str
    source_stats: List[SourceStat] = Field(default_factory=list)
    signals: List[Signal] = Field(default_factory=list)
    source_results_count: int = 0
    total_signals_before_dedupe: int = 0
    social_meta: Optional[SocialMeta] = None


class DigestPayload(_CamelModel):
    clusters: List[Cluster] = Field(default_factory=list)
    themes: List[str] = Field(default_factory=list)
    materials: List[Post] = Field(default_factory=list)
    source_stats: List[SourceStat] = Field(default_factory=list)
    coverage: Coverage = Field(default_factory=Coverage)
    period_label: str = ""


class Digest(BaseModel):
    """Digest builder output handed to the persistence collaborator."""

    parse_status: str
    query_with_since: str
    raw_text: str = ""
    payload: DigestPayload = Field(default_factory=DigestPayload)


class Run(_CamelModel):
    """One full execution of the pipeline for one theme."""

    id: str
    theme_id: str
    theme_name: str
    query: str = ""
    period_days: int = 2
    period_label: str = ""
    model: str = ""
    query_with_since: str = ""
    since_date: str = ""
    run_date_jst: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    parse_status: str = "ok"
    payload: DigestPayload = Field(default_factory=DigestPayload)
    raw_text: str = ""
