"""Social-search client and response normalization."""

from .xai_search import (
    CandidateCluster,
    CandidatePost,
    ParsedSearch,
    TrendData,
    XSearchClient,
    extract_json_text,
    find_assistant_text,
    normalize_trend_data,
    parse_grok_response,
)

__all__ = [
    "CandidateCluster",
    "CandidatePost",
    "ParsedSearch",
    "TrendData",
    "XSearchClient",
    "extract_json_text",
    "find_assistant_text",
    "normalize_trend_data",
    "parse_grok_response",
]
