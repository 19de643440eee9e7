"""Static registry of fetch targets and per-run catalog filtering."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence
from urllib.parse import urlencode

from core import CostTier, SourceCategory, SourceDescriptor, SourceKind


GOOGLE_NEWS_BASE = "https://news.google.com/rss/search"

SOURCE_MODE_ALL = "all"
SOURCE_MODE_NEWS_SOCIAL = "news_social"


def _news(source_id: str, name: str, category: SourceCategory, priority: int, template: str, limit: int = 8) -> SourceDescriptor:
    return SourceDescriptor(
        id=source_id,
        kind=SourceKind.GOOGLE_NEWS,
        name=f"Google News / {name}",
        category=category,
        cost_tier=CostTier.FREE,
        priority=priority,
        item_limit=limit,
        query_template=template,
    )


def _honto(source_id: str, name: str, url: str) -> SourceDescriptor:
    return SourceDescriptor(
        id=source_id,
        kind=SourceKind.HONTO_BESTSELLER,
        name=name,
        category=SourceCategory.RANKING,
        priority=4,
        item_limit=10,
        url=url,
    )


SOURCE_CATALOG: tuple[SourceDescriptor, ...] = (
    SourceDescriptor(
        id="x_grok_social",
        kind=SourceKind.X_GROK,
        name="X / Grok x_search",
        category=SourceCategory.SOCIAL,
        cost_tier=CostTier.API,
        priority=5,
        item_limit=14,
    ),
    _news("news_publish_general", "出版業界全般", SourceCategory.INDUSTRY_NEWS, 4,
          "{theme} 出版 業界 OR 書籍 OR 書店 OR 電子書籍"),
    _news("news_pr_times", "PR TIMES", SourceCategory.PRESS_RELEASE, 4,
          "{theme} PR TIMES OR プレスリリース 出版"),
    _news("news_book_review", "書評・レビュー", SourceCategory.BOOK_REVIEW, 4,
          "{theme} 書評 OR レビュー OR 読了 OR 感想"),
    _news("news_new_release", "新刊・発売情報", SourceCategory.NEW_RELEASE, 4,
          "{theme} 新刊 OR 発売 OR 刊行 OR 重版"),
    _news("news_personnel", "人事・組織変更", SourceCategory.PERSONNEL, 3,
          "{theme} 出版 人事 OR 異動 OR 就任 OR 退任"),
    _news("news_tv_publicity", "テレビ露出", SourceCategory.PUBLICITY_TV, 3,
          "{theme} 出版 テレビ OR 番組 出演 OR 特集"),
    _news("news_radio_publicity", "ラジオ露出", SourceCategory.PUBLICITY_RADIO, 3,
          "{theme} 出版 ラジオ OR 放送 OR 出演"),
    _news("news_bookstore", "書店・小売", SourceCategory.RETAIL, 3,
          "{theme} 書店 OR 取次 OR フェア OR 売場"),
    _news("news_ebook", "電子書籍・配信", SourceCategory.DIGITAL, 3,
          "{theme} 電子書籍 OR Kindle OR Kobo OR 配信"),
    _news("news_printing", "印刷・紙・製本", SourceCategory.SUPPLY_CHAIN, 3,
          "{theme} 印刷 OR 用紙 OR 製本 OR 値上げ"),
    _news("news_distribution", "流通・物流", SourceCategory.SUPPLY_CHAIN, 3,
          "{theme} 書籍 物流 OR 配本 OR 流通 OR 在庫"),
    _news("news_library_education", "図書館・教育連携", SourceCategory.EDUCATION, 2,
          "{theme} 図書館 OR 学校 図書 OR 教育 出版"),
    _news("news_media_mix", "映像化・メディアミックス", SourceCategory.IP, 2,
          "{theme} 映像化 OR ドラマ化 OR アニメ化 OR メディアミックス"),
    _news("news_awards", "受賞・ランキング", SourceCategory.AWARDS, 2,
          "{theme} 受賞 OR ランキング OR ベストセラー"),
    SourceDescriptor(
        id="ranking_amazon_books",
        kind=SourceKind.AMAZON_BESTSELLER,
        name="Amazonランキング / 本",
        category=SourceCategory.RANKING,
        priority=4,
        item_limit=15,
        url="https://www.amazon.co.jp/gp/bestsellers/books",
    ),
    SourceDescriptor(
        id="ranking_amazon_kindle",
        kind=SourceKind.AMAZON_BESTSELLER,
        name="Amazonランキング / Kindle",
        category=SourceCategory.RANKING,
        priority=4,
        item_limit=15,
        url="https://www.amazon.co.jp/gp/bestsellers/digital-text",
    ),
    SourceDescriptor(
        id="ranking_tohan_weekly",
        kind=SourceKind.TOHAN_BESTSELLER,
        name="トーハン週間 / 総合",
        category=SourceCategory.RANKING,
        priority=4,
        item_limit=10,
        url="https://www.tohan.jp/bestsellers/",
    ),
    _honto("ranking_honto_ebook", "hontoランキング / 電子書籍",
           "https://honto.jp/ranking/gr/bestseller_1101_1204_012.html"),
    _honto("ranking_maruzen", "丸善ランキング",
           "https://honto.jp/ranking/gr/bestseller_1101_1206_011.html?shgcd=HB310"),
    _honto("ranking_junkudo", "ジュンク堂ランキング",
           "https://honto.jp/ranking/gr/bestseller_1101_1206_011.html?shgcd=HB320"),
    SourceDescriptor(
        id="hatenabookmark_books",
        kind=SourceKind.RSS_DIRECT,
        name="はてブ / 本",
        category=SourceCategory.BOOK_REVIEW,
        priority=3,
        item_limit=8,
        url="https://b.hatena.ne.jp/q/%E8%AA%AD%E6%9B%B8?mode=rss&sort=recent&users=3",
    ),
    SourceDescriptor(
        id="news_bunshun_online",
        kind=SourceKind.RSS_DIRECT,
        name="文藝春秋オンライン",
        category=SourceCategory.INDUSTRY_NEWS,
        priority=3,
        item_limit=6,
        url="https://bunshun.jp/list/feed/rss",
    ),
    _news("news_gendai_media", "現代ビジネス", SourceCategory.INDUSTRY_NEWS, 3,
          "現代ビジネス 講談社 出版 OR 書籍 OR 新刊", limit=6),
    SourceDescriptor(
        id="news_shinbunka",
        kind=SourceKind.RSS_DIRECT,
        name="新文化オンライン",
        category=SourceCategory.INDUSTRY_NEWS,
        priority=4,
        item_limit=8,
        max_age_days=7,
        url="https://www.shinbunka.co.jp/feed",
    ),
    SourceDescriptor(
        id="news_hon_jp",
        kind=SourceKind.RSS_DIRECT,
        name="HON.jp News Blog",
        category=SourceCategory.DIGITAL,
        priority=3,
        item_limit=6,
        url="https://hon.jp/news/feed",
    ),
)


def build_google_news_rss_url(query: str) -> str:
    params = urlencode({"q": query, "hl": "ja", "gl": "JP", "ceid": "JP:ja"})
    return f"{GOOGLE_NEWS_BASE}?{params}"


def _in_mode(source: SourceDescriptor, mode: str) -> bool:
    if mode == SOURCE_MODE_NEWS_SOCIAL:
        if source.kind == SourceKind.X_GROK:
            return True
        return source.category not in {SourceCategory.RANKING, SourceCategory.DEALS}
    return True


def get_source_catalog(
    mode: str = SOURCE_MODE_ALL,
    *,
    enabled_ids: Optional[Iterable[str]] = None,
    include_social: bool = True,
    catalog: Optional[Sequence[SourceDescriptor]] = None,
) -> List[SourceDescriptor]:
    """Catalog entries eligible for one run, in catalog order.

    `mode="news_social"` keeps the social source plus everything outside the
    ranking and deals categories. `enabled_ids` is an explicit allow-list.
    """
    allowed = {str(item).strip() for item in enabled_ids or [] if str(item).strip()} or None
    mode_key = str(mode or SOURCE_MODE_ALL).strip()
    selected: List[SourceDescriptor] = []
    for source in SOURCE_CATALOG if catalog is None else catalog:
        if not include_social and source.kind == SourceKind.X_GROK:
            continue
        if allowed is not None and source.id not in allowed:
            continue
        if not _in_mode(source, mode_key):
            continue
        selected.append(source)
    return selected


def summarize_source_cost(catalog: Optional[Sequence[SourceDescriptor]] = None) -> Dict[str, int]:
    entries = list(SOURCE_CATALOG if catalog is None else catalog)
    api = sum(1 for source in entries if source.cost_tier == CostTier.API)
    return {"total": len(entries), "free": len(entries) - api, "api": api}
