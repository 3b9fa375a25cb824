"""Trending listing parsers.

The listing is a third-party HTML page with no stability guarantee. Parsers
are expected to break when upstream markup changes; tests pin behaviour to
saved fixtures in tests/trending/fixtures instead of live pages.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import logging
import re
from typing import List, Optional, Tuple
from urllib.parse import urlsplit

from bs4 import BeautifulSoup

from app.crawlers.base import GITHUB_WEB_URL, RepositoryCandidate

logger = logging.getLogger(__name__)

# First path segments that look like owner/name but are site sections
_RESERVED_OWNERS = frozenset(
    {
        "about",
        "apps",
        "collections",
        "customer-stories",
        "enterprise",
        "events",
        "explore",
        "features",
        "login",
        "marketplace",
        "new",
        "notifications",
        "orgs",
        "organizations",
        "pricing",
        "pulls",
        "issues",
        "readme",
        "resources",
        "search",
        "security",
        "settings",
        "site",
        "solutions",
        "sponsors",
        "team",
        "topics",
        "trending",
        "users",
    }
)
_OWNER_PATTERN = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?$")
_REPO_NAME_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")
_GITHUB_HOSTS = ("github.com", "www.github.com")

_H2_LINK_PATTERN = re.compile(
    r"<h2[^>]*>\s*<a[^>]*?href=\"([^\"]+)\"",
    re.IGNORECASE,
)
_ANY_HREF_PATTERN = re.compile(r"href=\"([^\"]+)\"", re.IGNORECASE)
_COUNT_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*([km])?(?![a-z])", re.IGNORECASE)
_UNIT_MULTIPLIERS = {"": 1, "k": 1_000, "m": 1_000_000}


def parse_count(text) -> int:
    """
    Parse counts like '1,234', '12.2k' or '3m' into an integer

    Thousands separators are stripped, 'k' multiplies by 1,000 and 'm' by
    1,000,000. Unparseable input yields 0.
    """
    if text is None:
        return 0
    if isinstance(text, (int, float)):
        return int(text)

    cleaned = str(text).strip().replace(",", "")
    match = _COUNT_PATTERN.search(cleaned)
    if not match:
        return 0

    value = float(match.group(1))
    unit = (match.group(2) or "").lower()
    return int(round(value * _UNIT_MULTIPLIERS[unit]))


def parse_repository_path(href: Optional[str]) -> Optional[Tuple[str, str]]:
    """
    Return (owner, name) when href points at a repository root

    Repository links have exactly two non-empty path segments and no query or
    fragment; user, organization and topic pages are rejected by shape.
    """
    if not href:
        return None

    parts = urlsplit(href.strip())
    if parts.query or parts.fragment:
        return None
    if parts.netloc and parts.netloc.lower() not in _GITHUB_HOSTS:
        return None

    segments = parts.path.strip("/").split("/")
    if len(segments) != 2:
        return None

    owner, name = segments
    if not owner or not name:
        return None
    if owner.lower() in _RESERVED_OWNERS:
        return None
    if not _OWNER_PATTERN.match(owner) or not _REPO_NAME_PATTERN.match(name):
        return None
    if name in (".", ".."):
        return None
    return owner, name


class TrendingPageParser(ABC):
    """Turns a listing page body into ordered, deduplicated candidates."""

    @abstractmethod
    def parse(self, html: str) -> List[RepositoryCandidate]:
        pass


class GitHubTrendingParser(TrendingPageParser):
    """Parser for github.com/trending listing pages"""

    def parse(self, html: str) -> List[RepositoryCandidate]:
        if not html:
            return []

        candidates = self._parse_rows(html)
        if candidates:
            return candidates

        # Markup drift: fall back to link patterns over the raw body
        candidates = self._parse_links(_H2_LINK_PATTERN.findall(html))
        if not candidates:
            candidates = self._parse_links(_ANY_HREF_PATTERN.findall(html))
        if candidates:
            logger.warning(f"Trending rows not found, recovered {len(candidates)} repositories from links")
        return candidates

    def _parse_rows(self, html: str) -> List[RepositoryCandidate]:
        soup = BeautifulSoup(html, "lxml")
        candidates: List[RepositoryCandidate] = []
        seen: set[str] = set()

        for row in soup.select("article.Box-row"):
            link = row.select_one("h2 a[href]")
            identity = parse_repository_path(link.get("href")) if link else None
            if identity is None:
                continue

            owner, name = identity
            candidate = RepositoryCandidate(owner=owner, name=name, html_url=f"{GITHUB_WEB_URL}/{owner}/{name}")
            if candidate.canonical_url in seen:
                continue
            seen.add(candidate.canonical_url)

            try:
                self._fill_row_metadata(row, candidate)
            except Exception as e:
                logger.warning(f"Failed to parse trending row metadata for {candidate.full_name}: {e}")

            candidates.append(candidate)

        return candidates

    def _fill_row_metadata(self, row, candidate: RepositoryCandidate) -> None:
        desc_element = row.find("p")
        if desc_element:
            description = " ".join(desc_element.get_text(" ", strip=True).split())
            candidate.description = description or None

        lang_element = row.find("span", {"itemprop": "programmingLanguage"})
        if lang_element:
            candidate.language = lang_element.get_text(strip=True) or None

        star_link = row.find("a", href=lambda h: h and h.rstrip("/").endswith("/stargazers"))
        if star_link:
            candidate.stars = parse_count(star_link.get_text(strip=True))

        fork_link = row.find(
            "a",
            href=lambda h: h and (h.rstrip("/").endswith("/forks") or h.rstrip("/").endswith("/network/members")),
        )
        if fork_link:
            candidate.forks = parse_count(fork_link.get_text(strip=True))

        period_span = row.find("span", class_="float-sm-right")
        if period_span:
            candidate.stars_in_period = parse_count(period_span.get_text(" ", strip=True))

    def _parse_links(self, hrefs: List[str]) -> List[RepositoryCandidate]:
        candidates: List[RepositoryCandidate] = []
        seen: set[str] = set()
        for href in hrefs:
            identity = parse_repository_path(href)
            if identity is None:
                continue
            owner, name = identity
            candidate = RepositoryCandidate(owner=owner, name=name, html_url=f"{GITHUB_WEB_URL}/{owner}/{name}")
            if candidate.canonical_url in seen:
                continue
            seen.add(candidate.canonical_url)
            candidates.append(candidate)
        return candidates
