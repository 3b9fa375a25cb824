"""GitHub trending crawler: listing scrape plus per-repository REST detail"""

from __future__ import annotations

import asyncio
from collections.abc import Container
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, List, Optional
from urllib.parse import quote

import httpx
from dateutil import parser as date_parser

from app.config.settings import settings
from app.crawlers.base import (
    BaseCrawler,
    GITHUB_WEB_URL,
    RepositoryCandidate,
    normalize_period,
)
from app.crawlers.readme import extract_first_image
from app.crawlers.trending_parser import GitHubTrendingParser, TrendingPageParser
from app.utils.http import request_with_retry


class GitHubTrendingCrawler(BaseCrawler):
    """Crawler for GitHub trending repositories"""

    HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
    API_ACCEPT = "application/vnd.github+json"
    API_VERSION = "2022-11-28"
    README_BRANCHES = ("main", "master")

    def __init__(
        self,
        *,
        parser: Optional[TrendingPageParser] = None,
        token: Optional[str] = None,
        trending_url: Optional[str] = None,
        api_url: Optional[str] = None,
        raw_url: Optional[str] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        detail_delay_seconds: Optional[float] = None,
        timeout_seconds: Optional[float] = None,
        readme_timeout_seconds: Optional[float] = None,
        max_listing_entries: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__()
        self.parser = parser or GitHubTrendingParser()
        self._token = token if token is not None else settings.GITHUB_TOKEN
        self.trending_url = (trending_url or settings.GITHUB_TRENDING_URL).rstrip("/")
        self.api_url = (api_url or settings.GITHUB_API_URL).rstrip("/")
        self.raw_url = (raw_url or settings.GITHUB_RAW_URL).rstrip("/")
        self.max_attempts = max_attempts if max_attempts is not None else settings.TRENDING_FETCH_MAX_ATTEMPTS
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.TRENDING_FETCH_BACKOFF_SECONDS
        )
        if detail_delay_seconds is not None:
            self.delay = detail_delay_seconds
        self.timeout_seconds = timeout_seconds or settings.TRENDING_SCRAPE_TIMEOUT_SECONDS
        self.readme_timeout_seconds = readme_timeout_seconds or settings.TRENDING_README_TIMEOUT_SECONDS
        self.max_listing_entries = max_listing_entries or settings.TRENDING_MAX_LISTING_ENTRIES
        self._transport = transport

    def build_trending_url(self, period: str, language: Optional[str] = None) -> str:
        """Listing URL; 'daily' is the listing default and carries no query."""
        period = normalize_period(period)
        url = self.trending_url
        if language and language.strip():
            url += "/" + quote(language.strip().lower(), safe="+")
        if period != "daily":
            url += f"?since={period}"
        return url

    async def fetch_trending(
        self,
        period: str,
        language: Optional[str] = None,
        limit: int = 25,
        known_urls: Optional[Container[str]] = None,
    ) -> List[RepositoryCandidate]:
        """
        Fetch trending repositories with their detail metadata

        Listing failures propagate: without a listing there is nothing to
        process. A failed detail fetch degrades to the listing-level
        candidate. Candidates in `known_urls` skip the detail fetch.

        Returns:
            List of RepositoryCandidate objects in listing order
        """
        url = self.build_trending_url(period, language)
        self.log_start(url)

        async with self._client() as client:
            html = await self._fetch_listing(client, url)
            listed = self.parser.parse(html)
            if not listed:
                self.logger.warning(f"No repositories parsed from {url}")

            selected = listed[: max(0, min(limit, self.max_listing_entries))]
            self.logger.info(f"Found {len(listed)} trending repositories, processing {len(selected)}")

            candidates: List[RepositoryCandidate] = []
            detail_fetches = 0
            for entry in selected:
                if known_urls is not None and entry.canonical_url in known_urls:
                    self.logger.debug(f"Skipping detail fetch for known repository {entry.full_name}")
                    candidates.append(entry)
                    continue

                # Fair-use throttle between successive detail fetches
                if detail_fetches and self.delay > 0:
                    await asyncio.sleep(self.delay)
                detail_fetches += 1

                try:
                    candidates.append(await self._fetch_detail(client, entry))
                except Exception as e:
                    self.logger.warning(f"Failed to get details for {entry.full_name}, using listing data: {e}")
                    candidates.append(entry)

        self.log_end(len(candidates))
        return candidates

    async def fetch_repository(self, owner: str, repo: str) -> RepositoryCandidate:
        """Fetch one repository's detail; errors propagate to the caller."""
        entry = RepositoryCandidate(owner=owner, name=repo, html_url=f"{GITHUB_WEB_URL}/{owner}/{repo}")
        async with self._client() as client:
            return await self._fetch_detail(client, entry)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout_seconds,
            follow_redirects=True,
            headers={"User-Agent": self.user_agent},
            transport=self._transport,
        )

    async def _get(self, client: httpx.AsyncClient, url: str, **kwargs: Any) -> httpx.Response:
        return await request_with_retry(
            client,
            "GET",
            url,
            max_attempts=self.max_attempts,
            backoff_seconds=self.backoff_seconds,
            **kwargs,
        )

    async def _fetch_listing(self, client: httpx.AsyncClient, url: str) -> str:
        self.logger.info(f"Fetching {url}")
        response = await self._get(
            client,
            url,
            headers={
                "Accept": self.HTML_ACCEPT,
                "Accept-Language": "en-US,en;q=0.5",
            },
        )
        return response.text

    async def _fetch_detail(self, client: httpx.AsyncClient, entry: RepositoryCandidate) -> RepositoryCandidate:
        payload = await self._fetch_api_detail(client, entry.owner, entry.name)
        candidate = self._merge_api_payload(entry, payload)
        candidate.preview_image = await self._find_preview_image(client, candidate)
        candidate.detail_fetched = True
        return candidate

    async def _fetch_api_detail(self, client: httpx.AsyncClient, owner: str, repo: str) -> dict[str, Any]:
        headers = {
            "Accept": self.API_ACCEPT,
            "X-GitHub-Api-Version": self.API_VERSION,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        response = await self._get(client, f"{self.api_url}/repos/{owner}/{repo}", headers=headers)
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError(f"Unexpected repository payload for {owner}/{repo}")
        return payload

    def _merge_api_payload(self, entry: RepositoryCandidate, payload: dict[str, Any]) -> RepositoryCandidate:
        """Overlay REST fields on the listing entry; listing identity is kept."""
        license_info = payload.get("license")
        topics = payload.get("topics")

        return replace(
            entry,
            github_id=_pick(payload.get("id"), entry.github_id),
            description=_pick(payload.get("description"), entry.description),
            language=_pick(payload.get("language"), entry.language),
            stars=_pick(payload.get("stargazers_count"), entry.stars),
            forks=_pick(payload.get("forks_count"), entry.forks),
            watchers=_pick(payload.get("subscribers_count"), payload.get("watchers_count"), entry.watchers),
            open_issues=_pick(payload.get("open_issues_count"), entry.open_issues),
            size_kb=_pick(payload.get("size"), entry.size_kb),
            topics=list(topics) if isinstance(topics, list) and topics else list(entry.topics),
            license=_pick(license_info.get("name") if isinstance(license_info, dict) else None, entry.license),
            is_fork=bool(payload.get("fork", entry.is_fork)),
            html_url=_pick(payload.get("html_url"), entry.html_url),
            homepage=_pick(payload.get("homepage"), entry.homepage),
            default_branch=_pick(payload.get("default_branch"), entry.default_branch),
            created_at=_parse_datetime(payload.get("created_at")) or entry.created_at,
            updated_at=_parse_datetime(payload.get("updated_at")) or entry.updated_at,
            pushed_at=_parse_datetime(payload.get("pushed_at")) or entry.pushed_at,
        )

    async def _find_preview_image(self, client: httpx.AsyncClient, candidate: RepositoryCandidate) -> Optional[str]:
        branches = []
        for branch in (candidate.default_branch, *self.README_BRANCHES):
            if branch and branch not in branches:
                branches.append(branch)

        try:
            readme = await self._fetch_readme(client, candidate.owner, candidate.name, branches)
            if readme is None:
                return None
            content, branch = readme
            return extract_first_image(
                content,
                owner=candidate.owner,
                repo=candidate.name,
                branch=candidate.default_branch or branch,
                raw_base=self.raw_url,
            )
        except Exception as e:
            self.logger.warning(f"Failed to get preview image for {candidate.full_name}: {e}")
            return None

    async def _fetch_readme(
        self,
        client: httpx.AsyncClient,
        owner: str,
        repo: str,
        branches: List[str],
    ) -> Optional[tuple[str, str]]:
        """README content and the branch it was found on, or None."""
        for branch in branches:
            url = f"{self.raw_url}/{owner}/{repo}/{branch}/README.md"
            try:
                response = await self._get(client, url, timeout=self.readme_timeout_seconds)
            except httpx.HTTPError as e:
                self.logger.debug(f"README not available at {url}: {e}")
                continue
            return response.text, branch
        return None


def _pick(*values: Any) -> Any:
    for value in values:
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = date_parser.isoparse(str(value))
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
