"""Source catalog, fetch adapters and the bounded-concurrency collector."""

from .catalog import (
    SOURCE_CATALOG,
    SOURCE_MODE_ALL,
    SOURCE_MODE_NEWS_SOCIAL,
    build_google_news_rss_url,
    get_source_catalog,
    summarize_source_cost,
)
from .collector import collect_single_source, collect_theme_signals, map_with_concurrency, source_timeout
from .connectors import ADAPTERS, CollectContext, make_signal, normalize_url

__all__ = [
    "ADAPTERS",
    "CollectContext",
    "SOURCE_CATALOG",
    "SOURCE_MODE_ALL",
    "SOURCE_MODE_NEWS_SOCIAL",
    "build_google_news_rss_url",
    "collect_single_source",
    "source_timeout",
    "collect_theme_signals",
    "get_source_catalog",
    "make_signal",
    "map_with_concurrency",
    "normalize_url",
    "summarize_source_cost",
]
