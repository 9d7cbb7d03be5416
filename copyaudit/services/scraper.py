# =============================================================================
# Web Scraper — Fetch a Page, Extract Its Main Content
# =============================================================================
#
# Used to pull guideline or campaign copy from a URL.
#
# PIPELINE:
#   1. Guard: http(s) only, hostname must not resolve to a private,
#      loopback, link-local or reserved address (checked before connecting)
#   2. Fetch with browser-like headers, timeout, redirect limit, size cap
#      (urllib in a worker thread)
#   3. Metadata: <title> / og:title, description, keywords
#   4. Remove clutter (scripts, nav, headers, footers, ads, cookie banners..)
#   5. Pick the first content container (article, [role=main], main, ...)
#      or fall back to <body>; block elements end with a newline
#   6. Collapse blank-line runs; under 50 chars → whole-body text;
#      still under 50 chars → ScrapeError (likely a JS-rendered page)
#   7. cleaning_level="aggressive": ask the cleaning provider to rebuild
#      the article; accepted when it returns more than 50 chars
#      otherwise: "Title: ...\nDescription: ...\n\n" + raw text
#
# extract_brand_signals() is a second, looser extraction (title, headings,
# every text element) used by services/brand_analyzer.py.
# =============================================================================

from __future__ import annotations

import asyncio
import ipaddress
import logging
import re
import socket
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field
from typing import Literal

from bs4 import BeautifulSoup

from copyaudit.services.errors import ScrapeError
from copyaudit.services.llm import ProviderRegistry, complete_safely
from copyaudit.services.result import Err
from copyaudit.services.usage import SCRAPE_WEBSITE, UsageLogger

logger = logging.getLogger(__name__)

CleaningLevel = Literal["aggressive", "minimal"]

_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
_HEADERS = {
    "User-Agent": _USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9,vi;q=0.8",
    "Cache-Control": "no-cache",
}
_MAX_REDIRECTS = 3
_ALLOWED_SCHEMES = {"https", "http"}
_ALLOWED_CONTENT_TYPES = {"text/html", "application/xhtml+xml", "text/plain"}
_MIN_CONTENT_CHARS = 50

_CLUTTER_SELECTORS = [
    "script", "style", "noscript", "iframe", "svg", "video", "audio",
    "canvas", "map", "object", "link", "meta",
    "[hidden]", ".hidden",
    "#header", ".header", "header",
    "#footer", ".footer", "footer",
    "nav", ".nav", ".navigation", ".menu", "#menu",
    ".sidebar", "#sidebar", "aside",
    ".ads", ".advertisement", ".ad-banner",
    ".cookie-banner", "#cookie-banner", ".gdpr",
    ".social-share", ".share-buttons",
    ".comments", "#comments", ".comment-section",
    ".related-posts", ".recommended",
    ".popup", ".modal",
    ".login", ".signup", ".auth",
]
_CONTENT_SELECTORS = [
    "article", '[role="main"]', ".post-content", ".entry-content",
    "#content", ".content", ".article-body", "main",
]
_BLOCK_TAGS = ["p", "div", "h1", "h2", "h3", "h4", "h5", "h6", "li", "tr"]
_BLANK_RUN = re.compile(r"\n\s*\n")

# Brand analysis reads the whole page, so only obvious noise is removed
_SIGNAL_NOISE_SELECTORS = [
    "script", "style", "noscript", "iframe", "svg", "nav", "footer",
    '[role="alert"]',
]
_SIGNAL_TEXT_TAGS = ["p", "h1", "h2", "h3", "h4", "li", "blockquote"]
_SIGNAL_MIN_ELEMENT_CHARS = 20

_CLEANING_PROMPT = """Role: Web Content Extractor.
Task: Reconstruct the main article from the raw scraped text below.

Context Info:
- Title: {title}
- Description: {description}

Instructions:
1. Ignore navigation menus, footers, copyright, and irrelevant links.
2. Focus on the main body content related to the Title.
3. Preserve the original meaning and structure (headings, paragraphs).
4. Output cleanly formatted text (Markdown is preferred).
5. Remove duplicate content and redundant text.
6. Keep only article/product description, technical details, and relevant information.

Raw Scraped Text:
\"\"\"
{raw_text}
\"\"\""""


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class PageMetadata:
    title: str = ""
    description: str = ""
    keywords: str = ""


@dataclass
class ScrapeResult:
    url: str
    content: str
    metadata: PageMetadata = field(default_factory=PageMetadata)
    cleaned: bool = False
    tokens: int = 0


@dataclass
class PageSignals:
    """Brand-relevant text of a page: what it says and how it says it."""

    title: str = ""
    description: str = ""
    headings: list[str] = field(default_factory=list)
    text: str = ""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def scrape_url(
    url: str,
    cleaning_level: CleaningLevel = "aggressive",
    *,
    registry: ProviderRegistry,
    usage_logger: UsageLogger,
    user_id: str | None = None,
    cleaning_provider: str = "gemini",
    timeout: float = 20.0,
    max_bytes: int = 5_000_000,
    clean_input_chars: int = 40_000,
) -> ScrapeResult:
    """
    Fetch `url` and return its main textual content.

    Raises:
        ScrapeError: Disallowed URL, fetch failure, or no usable content.
    """
    html = await asyncio.to_thread(fetch_html, url, timeout, max_bytes)
    metadata, raw_text = extract_page(html)

    with_metadata = (
        f"Title: {metadata.title}\nDescription: {metadata.description}\n\n{raw_text}"
    )
    result = ScrapeResult(url=url, content=with_metadata, metadata=metadata)

    if cleaning_level != "aggressive":
        return result

    lookup = registry.get(cleaning_provider)
    if isinstance(lookup, Err):
        logger.info("Scrape cleaning skipped: %s", lookup)
        return result

    outcome = await complete_safely(
        lookup.value,
        cleaning_provider,
        messages=[{
            "role": "user",
            "content": _CLEANING_PROMPT.format(
                title=metadata.title,
                description=metadata.description,
                raw_text=raw_text[:clean_input_chars],
            ),
        }],
        temperature=0.3,
        max_tokens=8000,
    )
    if isinstance(outcome, Err):
        logger.warning("Scrape cleaning failed for %s: %s", url, outcome)
        return result

    response = outcome.value
    if len(response.content) > _MIN_CONTENT_CHARS:
        result.content = response.content
        result.cleaned = True
    else:
        # Too little back from the model; keep the raw extraction
        result.content = raw_text
    result.tokens = response.total_tokens

    await usage_logger.log(
        user_id,
        SCRAPE_WEBSITE,
        response.total_tokens,
        {"url": url, "cleaning_level": cleaning_level},
    )
    return result


def extract_page(html: str) -> tuple[PageMetadata, str]:
    """
    Extract metadata and main text from an HTML document.

    Raises:
        ScrapeError: Fewer than 50 characters of text even from <body>.
    """
    soup = BeautifulSoup(html, "html.parser")
    metadata = PageMetadata(
        title=_title(soup),
        description=(
            _meta(soup, name="description")
            or _meta(soup, property="og:description")
        ),
        keywords=_meta(soup, name="keywords"),
    )

    for tag in soup.select(", ".join(_CLUTTER_SELECTORS)):
        tag.extract()

    content = None
    for selector in _CONTENT_SELECTORS:
        content = soup.select_one(selector)
        if content is not None:
            break
    if content is None:
        content = soup.body or soup

    for br in content.find_all("br"):
        br.replace_with("\n")
    for el in content.find_all(_BLOCK_TAGS):
        el.insert_after("\n")

    text = _collapse(content.get_text())
    if len(text) < _MIN_CONTENT_CHARS:
        text = _collapse((soup.body or soup).get_text())
        if len(text) < _MIN_CONTENT_CHARS:
            raise ScrapeError(
                "Page content is too short or rendered by JavaScript"
            )

    return metadata, text


def extract_brand_signals(html: str) -> PageSignals:
    """
    Collect title, description, h1-h3 headings and every text element
    longer than 20 characters (whitespace-collapsed, one per line).

    Raises:
        ScrapeError: The page has no text at all.
    """
    soup = BeautifulSoup(html, "html.parser")
    signals = PageSignals(
        title=soup.title.get_text(strip=True) if soup.title else "",
        description=_meta(soup, name="description"),
    )

    for tag in soup.select(", ".join(_SIGNAL_NOISE_SELECTORS)):
        tag.extract()

    root = soup.body or soup
    lines = []
    for el in root.find_all(_SIGNAL_TEXT_TAGS):
        text = " ".join(el.get_text().split())
        if len(text) > _SIGNAL_MIN_ELEMENT_CHARS:
            lines.append(text)
    signals.text = "\n".join(lines)
    signals.headings = [
        heading
        for heading in (el.get_text(strip=True) for el in soup.find_all(["h1", "h2", "h3"]))
        if heading
    ]

    if not (signals.text or signals.headings or signals.title):
        raise ScrapeError("Page has no text to analyze")
    return signals


def fetch_html(url: str, timeout: float = 20.0, max_bytes: int = 5_000_000) -> str:
    """Blocking fetch with scheme/SSRF guard; run via asyncio.to_thread."""
    _validate_url(url)

    request = urllib.request.Request(url, headers=_HEADERS)
    opener = urllib.request.build_opener(_LimitedRedirectHandler(_MAX_REDIRECTS))
    try:
        with opener.open(request, timeout=timeout) as response:
            raw_ct = response.headers.get("Content-Type", "text/html")
            content_type = raw_ct.split(";")[0].strip().lower()
            if content_type not in _ALLOWED_CONTENT_TYPES:
                raise ScrapeError(f"Unsupported Content-Type '{content_type}'")

            body = response.read(max_bytes + 1)
            charset = response.headers.get_content_charset() or "utf-8"
    except urllib.error.HTTPError as e:
        raise ScrapeError(f"Website returned status {e.code}") from e
    except (urllib.error.URLError, TimeoutError, OSError) as e:
        raise ScrapeError(f"Failed to fetch '{url}': {e}") from e

    if len(body) > max_bytes:
        raise ScrapeError(f"Response body exceeds {max_bytes} bytes")

    logger.info("Fetched %s (%d bytes)", url, len(body))
    return body.decode(charset, errors="replace")


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _validate_url(url: str) -> None:
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in _ALLOWED_SCHEMES:
        raise ScrapeError(
            f"Unsupported URL scheme '{parsed.scheme}'. Only http(s) is allowed."
        )
    hostname = parsed.hostname
    if not hostname:
        raise ScrapeError(f"URL has no hostname: {url}")

    try:
        addrinfos = socket.getaddrinfo(hostname, None)
    except socket.gaierror as e:
        raise ScrapeError(f"DNS resolution failed for '{hostname}': {e}") from e

    for addrinfo in addrinfos:
        try:
            ip = ipaddress.ip_address(addrinfo[4][0])
        except ValueError:
            continue
        if (
            ip.is_private
            or ip.is_loopback
            or ip.is_link_local
            or ip.is_reserved
            or ip.is_multicast
            or ip.is_unspecified
        ):
            raise ScrapeError(
                f"URL resolves to a non-public address ({ip})"
            )


def _title(soup: BeautifulSoup) -> str:
    if soup.title and soup.title.get_text(strip=True):
        return soup.title.get_text(strip=True)
    return _meta(soup, property="og:title")


def _meta(soup: BeautifulSoup, **attrs: str) -> str:
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return ""
    return (tag.get("content") or "").strip()


def _collapse(text: str) -> str:
    return _BLANK_RUN.sub("\n\n", text).strip()


class _LimitedRedirectHandler(urllib.request.HTTPRedirectHandler):
    def __init__(self, max_redirects: int) -> None:
        self._max_redirects = max_redirects
        self._count = 0

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        self._count += 1
        if self._count > self._max_redirects:
            raise ScrapeError(f"Too many redirects (>{self._max_redirects})")
        # Re-check the target so a redirect cannot reach a private address
        _validate_url(newurl)
        return super().redirect_request(req, fp, code, msg, headers, newurl)
