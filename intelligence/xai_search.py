"""X search through the xAI Responses API, plus normalization of its untyped output."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
import math
import re
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from utils.exceptions import SocialSearchError


logger = logging.getLogger(__name__)

DEFAULT_MODEL = "grok-4-1-fast"
DEFAULT_BASE_URL = "https://api.x.ai/v1"

MAX_CLUSTERS = 5
MAX_CLUSTER_POSTS = 2
MAX_KEYPHRASES = 5
MAX_THEMES = 10
MAX_MATERIALS = 10


SYSTEM_PROMPT = """You are a Japanese publishing industry analyst. Use the x_search tool to find popular X posts.
Return ONLY valid JSON. No markdown, no explanation, no code blocks.

## Search Instructions
1. Search the user's query in Top mode with min_faves:10, limit:30. Find the most-liked posts.
2. If fewer than 5 posts are found, also search in Latest mode with min_faves:5, limit:20.
3. Merge results. Sort by likes descending. Select top 10 as materials.

## Output schema (strict JSON only)
{
  "editorialSummary": "30字以内の日本語一文（書籍名・著者名・具体的トピックを盛り込む）",
  "clusters": [
    {
      "name": "クラスター名（10字以内）",
      "keyphrases": ["フレーズ1", "フレーズ2", "フレーズ3"],
      "posts": [
        {"url": "https://x.com/i/status/...", "summary": "1-2行の日本語要約", "likes": 0}
      ]
    }
  ],
  "themes": ["テーマ1", "テーマ2", "テーマ3"],
  "materials": [
    {"url": "https://x.com/i/status/...", "summary": "1-2行の日本語要約", "likes": 0}
  ]
}

## Exclude
- 同人誌・コミケ・コミティア・二次創作・ファンアート・ファン小説

## Rules
- materials: いいね数降順、上位10件のみ
- summary は日本語で要約（投稿をそのままコピーしない）
- 結果が0件でも必ず上記のJSON構造を返す（空配列可）"""


class CandidatePost(BaseModel):
    url: str = ""
    summary: str = ""
    likes: float = 0.0


class CandidateCluster(BaseModel):
    name: str
    keyphrases: List[str] = Field(default_factory=list)
    posts: List[CandidatePost] = Field(default_factory=list)


class TrendData(BaseModel):
    """Normalized social-search result. Every field is always present."""

    clusters: List[CandidateCluster] = Field(default_factory=list)
    themes: List[str] = Field(default_factory=list)
    materials: List[CandidatePost] = Field(default_factory=list)
    editorial_summary: str = ""


@dataclass
class ParsedSearch:
    ok: bool
    data: TrendData = field(default_factory=TrendData)
    raw_text: str = ""


def _as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, list) else []


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _to_number(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _post(raw: Any) -> CandidatePost:
    payload = _as_dict(raw)
    return CandidatePost(
        url=_to_text(payload.get("url")),
        summary=_to_text(payload.get("summary")),
        likes=_to_number(payload.get("likes")),
    )


def normalize_trend_data(raw_data: Any) -> TrendData:
    """Coerce an untrusted JSON document into `TrendData`, filling defaults."""
    source = _as_dict(raw_data)

    clusters: List[CandidateCluster] = []
    for raw_cluster in _as_list(source.get("clusters"))[:MAX_CLUSTERS]:
        cluster = _as_dict(raw_cluster)
        posts = [post for post in (_post(item) for item in _as_list(cluster.get("posts"))[:MAX_CLUSTER_POSTS]) if post.url]
        keyphrases = [_to_text(item) for item in _as_list(cluster.get("keyphrases"))]
        keyphrases = [item for item in keyphrases if item][:MAX_KEYPHRASES]
        if not posts and not keyphrases:
            continue
        clusters.append(
            CandidateCluster(
                name=_to_text(cluster.get("name")) or "無題クラスター",
                keyphrases=keyphrases,
                posts=posts,
            )
        )

    themes = [_to_text(item) for item in _as_list(source.get("themes"))]
    themes = [item for item in themes if item][:MAX_THEMES]

    materials = [post for post in (_post(item) for item in _as_list(source.get("materials"))) if post.url]
    if not materials:
        materials = [post for cluster in clusters for post in cluster.posts]
    materials = sorted(materials, key=lambda post: post.likes, reverse=True)[:MAX_MATERIALS]

    summary = source.get("editorialSummary")
    return TrendData(
        clusters=clusters,
        themes=themes,
        materials=materials,
        editorial_summary=summary.strip() if isinstance(summary, str) else "",
    )


def find_assistant_text(response_json: Any) -> str:
    """First non-empty assistant text in a Responses API envelope."""
    envelope = _as_dict(response_json)
    output_text = envelope.get("output_text")
    if isinstance(output_text, str) and output_text.strip():
        return output_text

    for item in _as_list(envelope.get("output")):
        entry = _as_dict(item)
        content = entry.get("content")
        if not isinstance(content, list):
            continue
        # reasoning models emit type=message without a role
        if entry.get("role") != "assistant" and entry.get("type") != "message":
            continue
        for part in content:
            part_dict = _as_dict(part)
            text = part_dict.get("text")
            if not isinstance(text, str):
                continue
            if part_dict.get("type") in {"output_text", "text"} and text.strip():
                return text.strip()
    return ""


def extract_json_text(text: str) -> str:
    trimmed = str(text or "").strip()
    if not trimmed:
        return ""

    fenced = re.search(r"```(?:json)?\s*([\s\S]*?)```", trimmed, flags=re.IGNORECASE)
    if fenced and fenced.group(1):
        return fenced.group(1).strip()

    if trimmed.startswith("{") and trimmed.endswith("}"):
        return trimmed

    first = trimmed.find("{")
    last = trimmed.rfind("}")
    if first >= 0 and last > first:
        return trimmed[first : last + 1]
    return trimmed


def parse_grok_response(raw_json_text: str) -> ParsedSearch:
    """Parse a raw API response. Malformed input yields `ok=False`, never an exception."""
    try:
        envelope = json.loads(str(raw_json_text or ""))
    except ValueError:
        logger.warning("x_search envelope is not JSON (%d chars)", len(str(raw_json_text or "")))
        return ParsedSearch(ok=False, raw_text=str(raw_json_text or ""))

    assistant_text = find_assistant_text(envelope)
    if not assistant_text:
        logger.warning("x_search response has no assistant output_text")
        return ParsedSearch(ok=False)

    try:
        parsed = json.loads(extract_json_text(assistant_text))
    except ValueError:
        return ParsedSearch(ok=False, raw_text=assistant_text)

    return ParsedSearch(ok=True, data=normalize_trend_data(parsed), raw_text=assistant_text)


class XSearchClient:
    """Thin async client for the Responses API with the `x_search` tool."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 90.0,
    ) -> None:
        self.api_key = api_key
        self.model = model or DEFAULT_MODEL
        self.base_url = str(base_url or DEFAULT_BASE_URL).rstrip("/")
        self.timeout = timeout

    def build_payload(self, query_with_since: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "instructions": SYSTEM_PROMPT,
            "input": [{"role": "user", "content": query_with_since}],
            "tools": [{"type": "x_search"}],
            "temperature": 0.3,
        }

    async def search(self, query_with_since: str, *, timeout: Optional[float] = None) -> str:
        """POST the query and return the raw response body."""
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        async with httpx.AsyncClient(timeout=httpx.Timeout(timeout or self.timeout)) as client:
            response = await client.post(
                f"{self.base_url}/responses",
                headers=headers,
                json=self.build_payload(query_with_since),
            )
        text = str(response.text or "")
        if response.status_code >= 400:
            raise SocialSearchError(
                f"xAI API error {response.status_code}: {text[:400]}",
                status_code=response.status_code,
            )
        return text
