"""
Web page parser for extracting content, links and images.
"""

import re
import logging
from typing import Dict, List, Optional, Tuple
from urllib.parse import urljoin, urlparse, urlunparse
from dataclasses import dataclass
from bs4 import BeautifulSoup


class ParseError(Exception):
    """Raised when a page cannot be parsed."""
    pass


@dataclass(frozen=True)
class PageRecord:
    """A fetched and parsed page. Immutable once handed to the caller."""
    url: str
    title: str
    content: str
    word_count: int
    depth: int
    category: str
    links: Tuple[str, ...] = ()
    images: Tuple[str, ...] = ()


@dataclass
class ParsedContent:
    """Parser output before crawl identity (depth, category) is attached."""
    url: str
    title: str
    content: str
    word_count: int
    links: List[str]
    images: List[str]

    def to_record(self, depth: int, category: str) -> PageRecord:
        return PageRecord(
            url=self.url,
            title=self.title,
            content=self.content,
            word_count=self.word_count,
            depth=depth,
            category=category,
            links=tuple(self.links),
            images=tuple(self.images),
        )


def normalize_url(url: str) -> str:
    """Lowercase scheme and host and drop the fragment."""
    parsed = urlparse(url)
    return urlunparse((
        parsed.scheme.lower(),
        parsed.netloc.lower(),
        parsed.path or '/',
        parsed.params,
        parsed.query,
        ''
    ))


def get_domain(url: str) -> str:
    """Return the hostname of url, or an empty string if it has none."""
    try:
        return (urlparse(url).hostname or '').lower()
    except ValueError:
        return ''


class ContentParser:
    """
    Parses HTML into page text, same-domain links and image URLs.
    """

    UNWANTED_SELECTORS = 'script, style, noscript, nav, footer, .advertisement, .ads, .ad'

    CONTENT_SELECTORS = [
        '#page-content',
        '.content',
        '.main-content',
        'main',
        'article',
        '.article-body',
        '.post-content',
    ]

    def __init__(self, parser_backend: str = 'lxml'):
        self.parser_backend = parser_backend
        self.logger = logging.getLogger(__name__)
        self.whitespace_pattern = re.compile(r'\s+')

    def parse(self, html_content: str, base_url: str, domain_filter: str) -> ParsedContent:
        """
        Parse HTML content.

        Args:
            html_content: Raw HTML
            base_url: URL the HTML was fetched from, used to resolve relative links
            domain_filter: Hostname outbound links must match

        Returns:
            ParsedContent with cleaned text, links and images

        Raises:
            ParseError: if the markup cannot be processed
        """
        try:
            soup = BeautifulSoup(html_content, self.parser_backend)

            for unwanted in soup.select(self.UNWANTED_SELECTORS):
                unwanted.decompose()

            title = self._extract_title(soup) or base_url
            content = self._extract_main_content(soup)
            links = self._extract_links(soup, base_url, domain_filter)
            images = self._extract_images(soup, base_url)
        except Exception as e:
            raise ParseError(f"Failed to parse {base_url}: {e}") from e

        parsed = ParsedContent(
            url=base_url,
            title=title,
            content=content,
            word_count=len(content.split()),
            links=links,
            images=images,
        )
        self.logger.debug(f"Parsed {base_url}: {parsed.word_count} words, {len(links)} links")
        return parsed

    def extract_categories(self, html_content: str, base_url: str,
                           domain_filter: str) -> Dict[str, str]:
        """
        Discover a site's top-level sections from its root page.

        Every same-domain anchor with visible text becomes a category named after
        that text. Anchors whose text starts with "edit" are skipped. A later anchor
        with the same name replaces an earlier one.
        """
        try:
            soup = BeautifulSoup(html_content, self.parser_backend)
        except Exception as e:
            raise ParseError(f"Failed to parse {base_url}: {e}") from e

        categories: Dict[str, str] = {}
        for anchor in soup.find_all('a', href=True):
            text = self._clean_text(anchor.get_text())
            if not text or text.lower().startswith('edit'):
                continue

            url = self._resolve_link(anchor['href'], base_url)
            if url is None or get_domain(url) != domain_filter.lower():
                continue

            categories[self._sanitize_name(text) or 'misc'] = url

        return categories

    def _extract_title(self, soup: BeautifulSoup) -> str:
        title_tag = soup.find('title')
        if title_tag:
            return self._clean_text(title_tag.get_text())
        return ''

    def _extract_main_content(self, soup: BeautifulSoup) -> str:
        """
        Text of every element matching the first content selector whose
        matches hold non-empty text, else of the body.
        """
        for selector in self.CONTENT_SELECTORS:
            elements = soup.select(selector)
            text = self._clean_text(' '.join(el.get_text(separator=' ') for el in elements))
            if text:
                return text

        body = soup.find('body') or soup
        return self._clean_text(body.get_text(separator=' '))

    def _extract_links(self, soup: BeautifulSoup, base_url: str, domain_filter: str) -> List[str]:
        """Absolute, deduplicated links whose host equals domain_filter."""
        domain_filter = domain_filter.lower()
        links: Dict[str, None] = {}

        for anchor in soup.find_all('a', href=True):
            url = self._resolve_link(anchor['href'], base_url)
            if url is not None and get_domain(url) == domain_filter:
                links.setdefault(url, None)

        return list(links)

    def _extract_images(self, soup: BeautifulSoup, base_url: str) -> List[str]:
        images: Dict[str, None] = {}
        for img in soup.find_all('img', src=True):
            src = img['src'].strip()
            if src:
                images.setdefault(urljoin(base_url, src), None)
        return list(images)

    def _resolve_link(self, href: str, base_url: str) -> Optional[str]:
        """Resolve href against base_url; None for fragments and non-http schemes."""
        href = href.strip()
        if not href or href.startswith('#'):
            return None
        try:
            absolute = urljoin(base_url, href)
        except ValueError:
            return None
        if urlparse(absolute).scheme not in ('http', 'https'):
            return None
        return normalize_url(absolute)

    @staticmethod
    def _sanitize_name(name: str) -> str:
        return re.sub(r'[\\/*?:"<>|]', '_', name)

    def _clean_text(self, text: str) -> str:
        if not text:
            return ""
        return self.whitespace_pattern.sub(' ', text).strip()
