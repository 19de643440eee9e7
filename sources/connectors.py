"""Fetch adapters: one per source kind, each producing normalized `Signal` lists."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
import json
import logging
import random
from typing import Awaitable, Callable, Dict, List, Optional, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

from core import MetricLabel, Signal, SocialMeta, SourceDescriptor, SourceKind, SourceResult, SourceStatus, ThemeSpec
from intelligence.xai_search import XSearchClient, parse_grok_response
from sources.catalog import build_google_news_rss_url
from sources.extractors import ExtractedEntry, get_extractor
from sources.feed_parser import FeedEntry, parse_feed, truncate
from utils.exceptions import ResponseTooLargeError, RobotCheckError, SourceFetchError
from utils.timeutils import create_id, get_since_date, parse_datetime, since_threshold


logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "TodaysInSaitoCollector/0.2 (+https://localhost)"
DEFAULT_MAX_RESPONSE_BYTES = 2 * 1024 * 1024
DEFAULT_ACCEPT = "text/html,application/xhtml+xml,application/xml,text/xml;q=0.9,*/*;q=0.8"
JA_ACCEPT_LANGUAGE = "ja,en-US;q=0.9"

# browser UAs rotated for storefront pages that reject bot user agents
BROWSER_USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:134.0) Gecko/20100101 Firefox/134.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/18.2 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
)

# seconds slept before each storefront request
AMAZON_REQUEST_JITTER = (1.0, 3.0)

SOCIAL_TITLE_CHARS = 42
SOCIAL_QUERY_WINDOW_DAYS = 7

_TRACKING_PARAMS = {"utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content"}
_ROBOT_CHECK_MARKERS = ("robot check", "captcha", "enter the characters", "文字を入力")


@dataclass
class CollectContext:
    """Shared per-run inputs handed to every adapter."""

    theme: ThemeSpec
    since_date: str
    timeout: float = 12.0
    api_key: str = ""
    model: str = "grok-4-1-fast"
    max_response_bytes: int = DEFAULT_MAX_RESPONSE_BYTES
    user_agent: str = DEFAULT_USER_AGENT
    social_client: Optional[XSearchClient] = None
    # ceiling for the social search call; `timeout` applies when unset
    social_timeout: Optional[float] = None
    now: Optional[datetime] = None


AdapterOutcome = Union[List[Signal], SourceResult]
Adapter = Callable[[SourceDescriptor, CollectContext], Awaitable[AdapterOutcome]]


def random_user_agent() -> str:
    return random.choice(BROWSER_USER_AGENTS)


def normalize_url(raw_url: str) -> str:
    """Absolute http(s) URL without fragment and utm_* parameters; "" otherwise."""
    value = str(raw_url or "").strip()
    if not value:
        return ""
    try:
        parts = urlsplit(value)
    except ValueError:
        return ""
    if parts.scheme.lower() not in {"http", "https"} or not parts.netloc:
        return ""

    query = parts.query
    pairs = parse_qsl(query, keep_blank_values=True)
    if any(key in _TRACKING_PARAMS for key, _ in pairs):
        query = urlencode([(key, val) for key, val in pairs if key not in _TRACKING_PARAMS])
    path = parts.path or "/"
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, query, ""))


def is_recent_enough(published_at: Optional[str], since_date: str) -> bool:
    """True unless both the timestamp and the threshold parse and the item is older."""
    published = parse_datetime(published_at)
    if published is None:
        return True
    threshold = since_threshold(since_date)
    if threshold is None:
        return True
    return published >= threshold


def fill_template(template: str, theme: ThemeSpec, since_date: str) -> str:
    return (
        str(template or "")
        .replace("{theme}", theme.search_text)
        .replace("{periodDays}", str(theme.period_days or 2))
        .replace("{sinceDate}", str(since_date or ""))
    )


def make_signal(
    source: SourceDescriptor,
    *,
    title: str = "",
    summary: str = "",
    url: str = "",
    published_at: Optional[str] = None,
    metric_label: MetricLabel = MetricLabel.SCORE,
    metric_value: float = 0.0,
    cover_image_url: Optional[str] = None,
) -> Signal:
    value = float(metric_value or 0)
    return Signal(
        id=create_id("sig"),
        source_id=source.id,
        source_name=source.name,
        source_category=source.category,
        source_kind=source.kind,
        source_priority=int(source.priority or 1),
        title=truncate(title or summary),
        summary=truncate(summary or title),
        url=normalize_url(url),
        published_at=published_at or None,
        metric_label=metric_label,
        metric_value=value,
        likes=value if metric_label == MetricLabel.LIKES else 0.0,
        cover_image_url=cover_image_url or None,
    )


async def _http_get_text(
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = 12.0,
    max_bytes: int = DEFAULT_MAX_RESPONSE_BYTES,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """GET `url` with a byte ceiling. Non-2xx raises `SourceFetchError`."""
    request_headers = {"User-Agent": DEFAULT_USER_AGENT, "Accept": DEFAULT_ACCEPT}
    request_headers.update(headers or {})
    async with httpx.AsyncClient(
        timeout=httpx.Timeout(timeout), follow_redirects=True, transport=transport
    ) as client:
        async with client.stream("GET", url, headers=request_headers) as response:
            declared = response.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > max_bytes:
                raise ResponseTooLargeError(
                    f"response too large: {declared} bytes (max {max_bytes})", source=url
                )

            chunks: List[bytes] = []
            total = 0
            async for chunk in response.aiter_bytes():
                total += len(chunk)
                if total > max_bytes:
                    raise ResponseTooLargeError(f"response too large (max {max_bytes} bytes)", source=url)
                chunks.append(chunk)

            if response.is_error:
                raise SourceFetchError(f"{response.status_code} {response.reason_phrase}".strip(), source=url)
    return b"".join(chunks).decode("utf-8", errors="replace")


async def _fetch(context: CollectContext, url: str, headers: Optional[Dict[str, str]] = None) -> str:
    merged = {"User-Agent": context.user_agent}
    merged.update(headers or {})
    return await _http_get_text(
        url,
        headers=merged,
        timeout=context.timeout,
        max_bytes=context.max_response_bytes,
    )


def _feed_signals(
    source: SourceDescriptor,
    entries: List[FeedEntry],
    *,
    since_date: Optional[str],
) -> List[Signal]:
    linked = [entry for entry in entries if entry.link]
    if since_date is not None:
        linked = [entry for entry in linked if is_recent_enough(entry.published_at, since_date)]
    return [
        make_signal(
            source,
            title=entry.title,
            summary=entry.summary or entry.title,
            url=entry.link,
            published_at=entry.published_at or None,
            metric_label=MetricLabel.MENTIONS,
            metric_value=1,
        )
        for entry in linked[: max(0, int(source.item_limit or 8))]
    ]


async def collect_google_news(source: SourceDescriptor, context: CollectContext) -> List[Signal]:
    """News search feed built from the descriptor's query template."""
    query_base = fill_template(source.query_template or "{theme}", context.theme, context.since_date)
    window_days = min(30, max(1, int(context.theme.period_days or 2)))
    feed_url = build_google_news_rss_url(f"{query_base} when:{window_days}d")
    xml_text = await _fetch(context, feed_url)
    return _feed_signals(source, parse_feed(xml_text), since_date=context.since_date)


async def collect_direct_rss(source: SourceDescriptor, context: CollectContext) -> List[Signal]:
    """Publisher feed; `max_age_days` on the descriptor overrides the run window."""
    xml_text = await _fetch(context, str(source.url or ""))
    since_date = context.since_date
    if source.max_age_days:
        since_date = get_since_date(source.max_age_days, now=context.now)
    return _feed_signals(source, parse_feed(xml_text), since_date=since_date)


async def collect_rss_ranking(source: SourceDescriptor, context: CollectContext) -> List[Signal]:
    xml_text = await _fetch(context, str(source.url or ""))
    entries = [entry for entry in parse_feed(xml_text) if entry.link][: max(0, int(source.item_limit or 10))]
    return [
        make_signal(
            source,
            title=entry.title,
            summary=entry.summary or entry.title,
            url=entry.link,
            published_at=entry.published_at or None,
            metric_label=MetricLabel.RANK,
            metric_value=index + 1,
        )
        for index, entry in enumerate(entries)
    ]


def _ranked_signals(source: SourceDescriptor, entries: List[ExtractedEntry]) -> List[Signal]:
    return [
        make_signal(
            source,
            title=entry.title,
            summary=entry.summary,
            url=entry.url,
            metric_label=MetricLabel.RANK,
            metric_value=entry.rank or index + 1,
        )
        for index, entry in enumerate(entries)
    ]


async def collect_page_ranking(source: SourceDescriptor, context: CollectContext) -> List[Signal]:
    """Bookstore ranking page parsed by the site's registered extractor."""
    html = await _fetch(context, str(source.url or ""), {"Accept-Language": JA_ACCEPT_LANGUAGE})
    entries = get_extractor(source.kind).extract(html, int(source.item_limit or 10))
    return _ranked_signals(source, entries)


def is_robot_check(html: str) -> bool:
    lowered = str(html or "").lower()
    return any(marker in lowered for marker in _ROBOT_CHECK_MARKERS)


async def collect_amazon_ranking(source: SourceDescriptor, context: CollectContext) -> List[Signal]:
    """Try each configured URL until one yields entries; raise with the last reason."""
    urls = list(source.urls or ()) or [str(source.url or "")]
    extractor = get_extractor(SourceKind.AMAZON_BESTSELLER)
    last_error = ""

    for url in urls:
        low, high = AMAZON_REQUEST_JITTER
        if high > 0:
            await asyncio.sleep(random.uniform(low, high))
        try:
            html = await _fetch(
                context,
                url,
                {
                    "User-Agent": random_user_agent(),
                    "Accept-Language": "ja-JP,ja;q=0.9,en-US;q=0.8,en;q=0.7",
                    "Referer": "https://www.amazon.co.jp/",
                },
            )
        except (SourceFetchError, httpx.HTTPError) as exc:
            last_error = f"{url}: {exc}"
            logger.info("[amazon_ranking] fetch failed: %s", last_error)
            continue

        if is_robot_check(html):
            last_error = f"Robot Check detected: {url}"
            logger.info("[amazon_ranking] %s", last_error)
            continue

        entries = extractor.extract(html, int(source.item_limit or 10))
        if not entries:
            last_error = f"0 entries extracted: {url}"
            logger.info("[amazon_ranking] %s", last_error)
            continue
        return _ranked_signals(source, entries)

    raise RobotCheckError(last_error or "all URLs failed", source=source.id)


async def collect_rakuten_ranking(source: SourceDescriptor, context: CollectContext) -> List[Signal]:
    limit = int(source.item_limit or 10)
    api_url = (
        source.url
        or f"https://rdc-api-catalog-gateway-api.rakuten.co.jp/books/rank/001/hourly.json?hits={limit}&page=1&period=0&sid=10"
    )
    text = await _fetch(context, api_url)
    try:
        payload = json.loads(text)
    except ValueError:
        return []
    rows = payload.get("data") if isinstance(payload, dict) else None
    signals: List[Signal] = []
    for index, row in enumerate(list(rows or [])[:limit]):
        item = row if isinstance(row, dict) else {}
        title = str(item.get("title") or "")
        signals.append(
            make_signal(
                source,
                title=title,
                summary=f"{title}（楽天ブックスランキング）",
                url=str(item.get("url") or ""),
                metric_label=MetricLabel.RANK,
                metric_value=index + 1,
            )
        )
    return signals


async def collect_yahoo_follow(source: SourceDescriptor, context: CollectContext) -> List[Signal]:
    html = await _fetch(
        context,
        str(source.url or ""),
        {
            "User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 Chrome/120",
            "Accept-Language": JA_ACCEPT_LANGUAGE,
        },
    )
    entries = get_extractor(SourceKind.YAHOO_FOLLOW).extract(html, int(source.item_limit or 10))
    return [
        make_signal(
            source,
            title=entry.title,
            summary=entry.title,
            url=entry.url,
            metric_label=MetricLabel.MENTIONS,
            metric_value=1,
        )
        for entry in entries
    ]


async def collect_kinseri_deals(source: SourceDescriptor, context: CollectContext) -> List[Signal]:
    """Discounted titles; no ranking semantics, so the metric stays empty."""
    html = await _fetch(
        context,
        str(source.url or ""),
        {"User-Agent": random_user_agent(), "Accept-Language": JA_ACCEPT_LANGUAGE},
    )
    entries = get_extractor(SourceKind.KINSERI_DEALS).extract(html, int(source.item_limit or 20))
    return [
        make_signal(
            source,
            title=entry.title,
            summary=entry.summary,
            url=entry.url,
            metric_label=MetricLabel.NONE,
            metric_value=0,
        )
        for entry in entries
    ]


def build_social_query(*, now_since: Optional[str] = None) -> str:
    """Short keyword query over a fixed 7-day window; long queries lose precision."""
    since = now_since or get_since_date(SOCIAL_QUERY_WINDOW_DAYS)
    return f"出版社 OR 書評 OR 新刊 OR ベストセラー OR 重版 -同人誌 -コミケ since:{since}"


def _social_title(text: str) -> str:
    if not text:
        return "X上の投稿"
    if len(text) > SOCIAL_TITLE_CHARS:
        return f"{text[:SOCIAL_TITLE_CHARS]}…"
    return text


async def collect_social_search(source: SourceDescriptor, context: CollectContext) -> SourceResult:
    """Delegate to the X search client; skipped when no API key is configured."""
    if not context.api_key:
        return SourceResult(
            source=source,
            status=SourceStatus.SKIPPED,
            meta={"reason": "XAI_API_KEY is not configured"},
        )

    client = context.social_client or XSearchClient(api_key=context.api_key, model=context.model)
    query_with_since = build_social_query(
        now_since=get_since_date(SOCIAL_QUERY_WINDOW_DAYS, now=context.now)
    )
    raw = await client.search(query_with_since)
    parsed = parse_grok_response(raw)

    items: List[Signal] = []
    for post in [post for post in parsed.data.materials if post.url][: int(source.item_limit or 14)]:
        full_text = post.summary
        items.append(
            make_signal(
                source,
                title=_social_title(full_text),
                summary=full_text,
                url=post.url,
                metric_label=MetricLabel.LIKES,
                metric_value=post.likes,
            )
        )

    meta = SocialMeta(
        query_with_since=query_with_since,
        parse_status="ok" if parsed.ok else "fallback_text",
        clusters=[cluster.model_dump() for cluster in parsed.data.clusters],
        themes=list(parsed.data.themes),
        editorial_summary=parsed.data.editorial_summary,
        raw_text=parsed.raw_text,
    )
    return SourceResult(source=source, status=SourceStatus.OK, items=items, meta=meta.model_dump())


ADAPTERS: Dict[SourceKind, Adapter] = {
    SourceKind.GOOGLE_NEWS: collect_google_news,
    SourceKind.RSS_DIRECT: collect_direct_rss,
    SourceKind.RSS_RANKING: collect_rss_ranking,
    SourceKind.AMAZON_BESTSELLER: collect_amazon_ranking,
    SourceKind.TOHAN_BESTSELLER: collect_page_ranking,
    SourceKind.HONTO_BESTSELLER: collect_page_ranking,
    SourceKind.YURINDO_BESTSELLER: collect_page_ranking,
    SourceKind.RAKUTEN_BESTSELLER: collect_rakuten_ranking,
    SourceKind.YAHOO_FOLLOW: collect_yahoo_follow,
    SourceKind.KINSERI_DEALS: collect_kinseri_deals,
    SourceKind.X_GROK: collect_social_search,
}
