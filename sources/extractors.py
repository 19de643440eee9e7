"""Site-specific page extractors for ranking, deal and listing pages.

Every extractor turns one HTML page into a uniform list of `ExtractedEntry`
records in page order. Extraction is best-effort: a layout change yields fewer
(or zero) entries, never an exception.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
import re
from typing import Dict, List, Optional
from urllib.parse import quote

from bs4 import BeautifulSoup, Tag

from core import SourceKind
from sources.feed_parser import truncate


@dataclass
class ExtractedEntry:
    title: str
    url: str
    summary: str = ""
    price: Optional[str] = None
    rank: Optional[int] = None


_PRICE_LABEL_RE = re.compile(r"^価格\s*[:：]?\s*", flags=re.IGNORECASE)
_TAX_LABEL_RE = re.compile(r"^(?:税込|税抜)\s*", flags=re.IGNORECASE)
_PRICE_RE = re.compile(
    r"^(?:(?:USD|US\$|JPY|JP¥|EUR|GBP|CAD|AUD|HKD|SGD|CNY|RMB|KRW)\s*)?"
    r"[¥￥$€£]?\s*[0-9][0-9,，]*(?:\.[0-9]+)?\s*"
    r"(?:円|ドル|USD|JPY|EUR|GBP)?$",
    flags=re.IGNORECASE,
)


def is_likely_price_text(text: str) -> bool:
    """True when `text` is only a price, e.g. "¥1,980", "USD 12.98", "価格: 880円"."""
    normalized = re.sub(r"\s+", " ", str(text or "")).strip()
    if not normalized:
        return False
    compact = _PRICE_LABEL_RE.sub("", normalized)
    compact = _TAX_LABEL_RE.sub("", compact).strip()
    return bool(_PRICE_RE.match(compact))


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(str(html or ""), "lxml")


def _node_text(node: Optional[Tag]) -> str:
    if node is None:
        return ""
    return _collapse(node.get_text(" ", strip=True))


def _collapse(text: str) -> str:
    return re.sub(r"\s+", " ", str(text or "")).strip()


def _with_ranks(entries: List[ExtractedEntry], limit: int) -> List[ExtractedEntry]:
    return [replace(entry, rank=index + 1) for index, entry in enumerate(entries[: max(0, limit)])]


class PageExtractor(ABC):
    """One structural extraction rule for one site's markup."""

    name: str = "page"

    @abstractmethod
    def extract(self, html: str, limit: int) -> List[ExtractedEntry]:
        """Extract at most `limit` entries in page order."""


class TohanExtractor(PageExtractor):
    """`<li class="item rank-1st">` blocks: h3 title, first e-hon refISBN link."""

    name = "tohan"
    _LINK_RE = re.compile(r"^https?://www\.e-hon\.ne\.jp[^\s\"]*refISBN=", flags=re.IGNORECASE)

    def extract(self, html: str, limit: int) -> List[ExtractedEntry]:
        results: List[ExtractedEntry] = []
        seen = set()
        for block in _soup(html).find_all("li"):
            if len(results) >= limit:
                break
            classes = list(block.get("class") or [])
            if "item" not in classes or not any(cls.startswith("rank-") for cls in classes):
                continue
            title = _node_text(block.find("h3"))
            if len(title) < 2:
                continue
            key = title.lower()
            if key in seen:
                continue
            seen.add(key)

            link = block.find("a", href=self._LINK_RE)
            url = str(link.get("href")).strip() if link is not None else ""
            results.append(ExtractedEntry(title=title, url=url, summary=f"{title}（トーハン週間ランキング）"))
        return _with_ranks(results, limit)


class HontoExtractor(PageExtractor):
    """`<h2 class="stHeading">` blocks; ebook page, then store page, then keyword search."""

    name = "honto"
    _EBOOK_RE = re.compile(r"^https?://honto\.jp/ebook/pd_", flags=re.IGNORECASE)
    _NETSTORE_RE = re.compile(r"^https?://honto\.jp/netstore/pd_", flags=re.IGNORECASE)

    def _pick_url(self, block: Tag, title: str) -> str:
        for pattern in (self._EBOOK_RE, self._NETSTORE_RE):
            link = block.find("a", href=pattern)
            if link is not None:
                return str(link.get("href")).split("?")[0]
        return f"https://honto.jp/netstore/search.html?search.keyword={quote(title, safe='')}"

    def extract(self, html: str, limit: int) -> List[ExtractedEntry]:
        results: List[ExtractedEntry] = []
        seen = set()
        for block in _soup(html).find_all("h2", class_="stHeading"):
            if len(results) >= limit * 2:
                break
            title = _node_text(block)
            if len(title) < 2:
                continue
            key = title.lower()
            if key in seen:
                continue
            seen.add(key)
            results.append(
                ExtractedEntry(title=title, url=self._pick_url(block, title), summary=f"{title}（hontoランキング）")
            )
        return _with_ranks(results, limit)


class YurindoExtractor(PageExtractor):
    """`div.book-detail h3` titles paired positionally with stock-search links."""

    name = "yurindo"
    _LINK_RE = re.compile(r"^https?://search\.yurindo\.bscentral\.jp/item\?ic=", flags=re.IGNORECASE)

    def extract(self, html: str, limit: int) -> List[ExtractedEntry]:
        soup = _soup(html)
        titles: List[str] = []
        for detail in soup.find_all("div", class_="book-detail"):
            title = _node_text(detail.find("h3"))
            if len(title) >= 2:
                titles.append(title)
        urls = [str(link.get("href")).strip() for link in soup.find_all("a", href=self._LINK_RE)]

        results: List[ExtractedEntry] = []
        seen = set()
        for index, title in enumerate(titles[:limit]):
            key = title.lower()
            if key in seen:
                continue
            seen.add(key)
            url = urls[index] if index < len(urls) else (
                f"https://search.yurindo.bscentral.jp/search/?keyword={quote(title, safe='')}"
            )
            results.append(ExtractedEntry(title=title, url=url, summary=f"{title}（有隣堂ランキング）"))
        return _with_ranks(results, limit)


class AmazonBestsellerExtractor(PageExtractor):
    """`/dp/<ASIN>` anchors; falls back to the cover `alt` when anchor text is a price."""

    name = "amazon"
    _DP_RE = re.compile(r"/dp/([A-Z0-9]{10})")
    _CHROME_RE = re.compile(r"Amazon\.co\.jp|カート|ほしい物リスト|ポイント", flags=re.IGNORECASE)
    _PROMO_RE = re.compile(
        r"マスターカード|クレジットカード|ギフト券|Unlimited|プライム会員|Echo|Kindle端末|Fire\s*(?:TV|タブレット)|Alexa",
        flags=re.IGNORECASE,
    )

    def _title_for(self, anchor: Tag) -> str:
        body_text = _node_text(anchor)
        image = anchor.find("img", alt=True)
        alt_text = _collapse(image.get("alt")) if image is not None else ""

        candidate = body_text
        if is_likely_price_text(body_text) and alt_text and not is_likely_price_text(alt_text):
            candidate = alt_text
        elif (not candidate or len(candidate) < 5) and alt_text:
            candidate = alt_text
        return truncate(candidate, 120)

    def extract(self, html: str, limit: int) -> List[ExtractedEntry]:
        results: List[ExtractedEntry] = []
        seen = set()
        for anchor in _soup(html).find_all("a", href=self._DP_RE):
            if len(results) >= limit * 3:
                break
            match = self._DP_RE.search(str(anchor.get("href") or ""))
            if match is None:
                continue
            asin = match.group(1)
            title = self._title_for(anchor)

            if len(title) < 3 or asin in seen:
                continue
            if self._CHROME_RE.search(title) or self._PROMO_RE.search(title):
                continue
            if is_likely_price_text(title):
                continue

            seen.add(asin)
            results.append(
                ExtractedEntry(
                    title=title,
                    url=f"https://www.amazon.co.jp/dp/{asin}",
                    summary=f"{title}（Amazonランキング）",
                )
            )
        return _with_ranks(results, limit)


class KinseriDealsExtractor(PageExtractor):
    """`<li>` blocks holding an Amazon product link followed by a `NNN円` price."""

    name = "kinseri"
    _LINK_RE = re.compile(r"^https?://www\.amazon\.co\.jp/dp/", flags=re.IGNORECASE)
    _YEN_RE = re.compile(r"([0-9][0-9,]*)円")

    def extract(self, html: str, limit: int) -> List[ExtractedEntry]:
        results: List[ExtractedEntry] = []
        seen = set()
        for block in _soup(html).find_all("li"):
            if len(results) >= limit * 2:
                break
            anchor = block.find("a", href=self._LINK_RE)
            if anchor is None:
                continue
            url = str(anchor.get("href")).strip()
            title = _node_text(anchor)
            if len(title) < 2 or url in seen:
                continue
            tail = block.get_text(" ", strip=True).split(anchor.get_text(" ", strip=True), 1)[-1]
            price = self._YEN_RE.search(tail)
            if price is None:
                continue
            seen.add(url)
            results.append(
                ExtractedEntry(title=title, url=url, summary=f"{title}（{price.group(1)}円）", price=price.group(1))
            )
        return results[:limit]


class YahooFollowExtractor(PageExtractor):
    """News article anchors (40-hex ids) wrapping an `h2` headline."""

    name = "yahoo_follow"
    _ARTICLE_RE = re.compile(r"^https://news\.yahoo\.co\.jp/articles/[a-f0-9]{40}$")

    def extract(self, html: str, limit: int) -> List[ExtractedEntry]:
        results: List[ExtractedEntry] = []
        seen = set()
        for anchor in _soup(html).find_all("a", href=self._ARTICLE_RE):
            if len(results) >= limit:
                break
            url = str(anchor.get("href"))
            title = _node_text(anchor.find("h2"))
            if len(title) < 5 or url in seen:
                continue
            seen.add(url)
            results.append(ExtractedEntry(title=title, url=url, summary=title))
        return results[:limit]


EXTRACTORS: Dict[SourceKind, PageExtractor] = {
    SourceKind.TOHAN_BESTSELLER: TohanExtractor(),
    SourceKind.HONTO_BESTSELLER: HontoExtractor(),
    SourceKind.YURINDO_BESTSELLER: YurindoExtractor(),
    SourceKind.AMAZON_BESTSELLER: AmazonBestsellerExtractor(),
    SourceKind.KINSERI_DEALS: KinseriDealsExtractor(),
    SourceKind.YAHOO_FOLLOW: YahooFollowExtractor(),
}


def get_extractor(kind: SourceKind) -> PageExtractor:
    try:
        return EXTRACTORS[kind]
    except KeyError:
        raise KeyError(f"no page extractor for source kind: {kind.value}") from None
