"""
Blog Adapter
============

Searches configured fly tying blogs and magazines with their site search
pages, then scrapes article text with per-site CSS selectors. Arbitrary
URLs fall back to generic content selectors.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import quote_plus, urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from fly_pattern_db.core.enums import SourceType
from fly_pattern_db.core.schema import StagedSource
from fly_pattern_db.ingestion.adapters.base import Candidate, DiscoveryBackend, Scraper
from fly_pattern_db.ingestion.config import BlogSiteConfig, GlobalConfig
from fly_pattern_db.ingestion.crawler import Crawler, TransientNetworkError

logger = logging.getLogger(__name__)

NOISE_SELECTOR = (
    "script, style, nav, footer, .sidebar, .widget, .ad, .advertisement, "
    ".comments, .related-posts, .social-share"
)

GENERIC_CONTENT_SELECTORS = [
    "article",
    ".post-content",
    ".entry-content",
    ".article-content",
    ".content",
    "main",
    "#content",
    ".post",
]

GENERIC_AUTHOR_SELECTORS = [".author", ".byline", '[rel="author"]', ".post-author"]

SKIPPED_PATH_PARTS = ("/tag/", "/category/", "/page/")

MIN_CONTENT_LENGTH = 100
MAX_CONTENT_LENGTH = 15000


@dataclass
class BlogArticle:
    """Text scraped from one article page."""

    url: str
    title: str
    site_name: str
    author: str | None
    content: str
    materials_html: str | None = None


def _collapse(text: str) -> str:
    return " ".join(text.split())


def _first_text(soup: BeautifulSoup, selector: str | None) -> str:
    if not selector:
        return ""
    element = soup.select_one(selector)
    return element.get_text(" ", strip=True) if element else ""


def parse_search_results(html: str, site: BlogSiteConfig) -> list[str]:
    """
    Collect article links from a site search page.

    Relative links are resolved against the site; tag, category and
    pagination pages are skipped.
    """
    soup = BeautifulSoup(html, "lxml")
    links: list[str] = []
    for anchor in soup.select(site.selectors.result_links):
        href = anchor.get("href")
        if not href:
            continue
        url = href if href.startswith("http") else urljoin(site.base_url, href)
        if any(part in url for part in SKIPPED_PATH_PARTS):
            continue
        if url not in links:
            links.append(url)
    return links[: site.max_pages * 5]


def parse_article(html: str, url: str, site: BlogSiteConfig) -> BlogArticle | None:
    """
    Scrape an article with a site's selectors.

    Returns:
        The article, or None when it has no title or too little text
    """
    soup = BeautifulSoup(html, "lxml")
    for element in soup.select(NOISE_SELECTOR):
        element.decompose()

    title = _first_text(soup, site.selectors.title)
    if not title:
        logger.warning("No title found at %s", url)
        return None

    content_el = soup.select_one(site.selectors.content)
    content = _collapse(content_el.get_text(" ")) if content_el else ""
    if len(content) < MIN_CONTENT_LENGTH:
        logger.warning("Content too short at %s (%d chars)", url, len(content))
        return None

    materials_html = None
    if site.selectors.materials:
        materials_el = soup.select_one(site.selectors.materials)
        if materials_el is not None:
            materials_html = materials_el.decode_contents()

    return BlogArticle(
        url=url,
        title=title,
        site_name=site.name,
        author=_first_text(soup, site.selectors.author) or None,
        content=content[:MAX_CONTENT_LENGTH],
        materials_html=materials_html,
    )


def parse_arbitrary_page(html: str, url: str) -> BlogArticle:
    """Best-effort article text from any web page."""
    soup = BeautifulSoup(html, "lxml")
    for element in soup.select(NOISE_SELECTOR + ", header"):
        element.decompose()

    title = _first_text(soup, "h1") or _first_text(soup, "title") or "Unknown Title"

    content = ""
    for selector in GENERIC_CONTENT_SELECTORS:
        element = soup.select_one(selector)
        if element is not None:
            content = _collapse(element.get_text(" "))
            if len(content) > 200:
                break
    if len(content) < MIN_CONTENT_LENGTH and soup.body is not None:
        content = _collapse(soup.body.get_text(" "))

    author = None
    for selector in GENERIC_AUTHOR_SELECTORS:
        text = _first_text(soup, selector)
        if text:
            author = text
            break

    materials_html = None
    for table in soup.find_all("table"):
        text = table.get_text(" ").lower()
        if "hook" in text or "thread" in text or "material" in text:
            materials_html = table.decode_contents()

    return BlogArticle(
        url=url,
        title=title,
        site_name=urlparse(url).netloc.removeprefix("www."),
        author=author,
        content=content[:MAX_CONTENT_LENGTH],
        materials_html=materials_html,
    )


class BlogAdapter(DiscoveryBackend, Scraper):
    """Discovery backend and scraper for configured blog sites."""

    ADAPTER_NAME = "blog"
    SOURCE_TYPE = SourceType.BLOG

    def __init__(
        self,
        sites: list[BlogSiteConfig],
        global_config: GlobalConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.sites = [s for s in sites if s.enabled]
        self.crawler = Crawler.from_config(global_config or GlobalConfig(), transport=transport)

    def site_for_url(self, url: str) -> BlogSiteConfig | None:
        for site in self.sites:
            if site.owns(url):
                return site
        return None

    async def discover(self, query: str) -> list[Candidate]:
        """Search every site and scrape the articles it links to."""
        candidates: list[Candidate] = []
        for site in self.sites:
            try:
                links = await self.search_site(site, query)
            except (TransientNetworkError, httpx.HTTPError) as e:
                logger.error("Blog search failed on %s: %s", site.name, e)
                continue

            for link in links:
                article = await self.scrape_article(link, site)
                if article is not None:
                    candidates.append(self._to_candidate(article))

        logger.info("Blogs found %d articles for %r", len(candidates), query)
        return candidates

    async def search_site(self, site: BlogSiteConfig, query: str) -> list[str]:
        """Article links from one site's search page."""
        search_url = site.search_url_template.replace("{query}", quote_plus(query))
        logger.info("Searching %s for %r", site.name, query)
        html = await self.crawler.get_text(search_url)
        links = parse_search_results(html, site)
        logger.info("Found %d links on %s", len(links), site.name)
        return links

    async def scrape_article(self, url: str, site: BlogSiteConfig | None = None) -> BlogArticle | None:
        """Fetch and parse one article; None when it is unusable or unreachable."""
        try:
            html = await self.crawler.get_text(url)
        except (TransientNetworkError, httpx.HTTPError) as e:
            logger.error("Failed to fetch %s: %s", url, e)
            return None
        if site is None:
            return parse_arbitrary_page(html, url)
        return parse_article(html, url, site)

    async def fetch_content(self, source: StagedSource) -> str | None:
        article = await self.scrape_article(source.url, self.site_for_url(source.url))
        if article is None or not article.content:
            return None
        return article.content

    async def describe_url(self, url: str) -> Candidate | None:
        """Build a candidate for one manually imported article URL."""
        article = await self.scrape_article(url, self.site_for_url(url))
        return self._to_candidate(article) if article is not None else None

    @staticmethod
    def _to_candidate(article: BlogArticle) -> Candidate:
        source_type = SourceType.PDF if article.url.lower().endswith(".pdf") else SourceType.BLOG
        return Candidate(
            url=article.url,
            title=article.title,
            source_type=source_type,
            snippet=article.content,
            creator_name=article.author,
            platform=article.site_name,
            content=article.content,
            metadata={"has_materials_section": article.materials_html is not None},
        )
