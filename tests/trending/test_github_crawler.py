from __future__ import annotations

import asyncio
from typing import Callable

import httpx
import pytest

from app.crawlers.github import GitHubTrendingCrawler

ROCKET_DETAIL = {
    "id": 101,
    "full_name": "acme/rocket",
    "description": "Blazing fast web framework for building APIs",
    "language": "Python",
    "stargazers_count": 12345,
    "forks_count": 1300,
    "subscribers_count": 210,
    "open_issues_count": 42,
    "size": 2048,
    "topics": ["web", "api"],
    "license": {"key": "mit", "name": "MIT License"},
    "fork": False,
    "html_url": "https://github.com/acme/rocket",
    "homepage": "https://rocket.example.com",
    "created_at": "2023-01-02T03:04:05Z",
    "updated_at": "2024-05-06T07:08:09Z",
    "pushed_at": "2024-05-06T07:08:09Z",
}


def make_crawler(handler: Callable[[httpx.Request], httpx.Response], **overrides) -> GitHubTrendingCrawler:
    options = {
        "transport": httpx.MockTransport(handler),
        "token": "",
        "max_attempts": 3,
        "backoff_seconds": 0,
        "detail_delay_seconds": 0,
    }
    options.update(overrides)
    return GitHubTrendingCrawler(**options)


def test_build_trending_url_omits_period_for_daily() -> None:
    crawler = make_crawler(lambda request: httpx.Response(200))

    assert crawler.build_trending_url("daily") == "https://github.com/trending"
    assert crawler.build_trending_url("weekly", "C++") == "https://github.com/trending/c++?since=weekly"
    assert crawler.build_trending_url("monthly", "Jupyter Notebook") == (
        "https://github.com/trending/jupyter%20notebook?since=monthly"
    )
    with pytest.raises(ValueError):
        crawler.build_trending_url("yearly")


@pytest.mark.asyncio
async def test_listing_retries_transient_failures_then_succeeds(trending_html: str) -> None:
    listing_calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "github.com":
            listing_calls.append(str(request.url))
            if len(listing_calls) < 3:
                raise httpx.ConnectError("connection reset", request=request)
            return httpx.Response(200, text=trending_html)
        return httpx.Response(404, json={"message": "Not Found"})

    crawler = make_crawler(handler)
    candidates = await crawler.fetch_trending("weekly", limit=2)

    assert len(listing_calls) == 3
    assert listing_calls[0] == "https://github.com/trending?since=weekly"
    assert [c.full_name for c in candidates] == ["acme/rocket", "widgets-inc/Dash.Board"]


@pytest.mark.asyncio
async def test_listing_raises_after_exactly_max_attempts() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503, text="unavailable")

    crawler = make_crawler(handler)

    with pytest.raises(httpx.HTTPStatusError):
        await crawler.fetch_trending("daily")

    assert len(calls) == 3


@pytest.mark.asyncio
async def test_permanent_http_error_is_not_retried() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(404, text="missing")

    crawler = make_crawler(handler)

    with pytest.raises(httpx.HTTPStatusError):
        await crawler.fetch_trending("daily")

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_detail_failure_degrades_to_listing_candidate(trending_html: str) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "github.com":
            return httpx.Response(200, text=trending_html)
        return httpx.Response(403, json={"message": "rate limited"})

    crawler = make_crawler(handler)
    candidates = await crawler.fetch_trending("weekly", limit=1)

    assert len(candidates) == 1
    rocket = candidates[0]
    assert rocket.detail_fetched is False
    assert rocket.stars == 12200
    assert rocket.description == "Blazing fast web framework for building APIs"


@pytest.mark.asyncio
async def test_detail_merges_api_fields_and_falls_back_to_master_readme(trending_html: str) -> None:
    readme_urls = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "github.com":
            return httpx.Response(200, text=trending_html)
        if request.url.host == "api.github.com":
            assert request.url.path == "/repos/acme/rocket"
            return httpx.Response(200, json=ROCKET_DETAIL)
        readme_urls.append(str(request.url))
        if "/master/" in request.url.path:
            return httpx.Response(200, text="# Rocket\n\n![logo](docs/logo.png)\n")
        return httpx.Response(404, text="404: Not Found")

    crawler = make_crawler(handler)
    (rocket,) = await crawler.fetch_trending("weekly", limit=1)

    assert readme_urls == [
        "https://raw.githubusercontent.com/acme/rocket/main/README.md",
        "https://raw.githubusercontent.com/acme/rocket/master/README.md",
    ]
    assert rocket.detail_fetched is True
    assert rocket.github_id == 101
    assert rocket.stars == 12345
    assert rocket.forks == 1300
    assert rocket.watchers == 210
    assert rocket.topics == ["web", "api"]
    assert rocket.license == "MIT License"
    assert rocket.stars_in_period == 3456
    assert rocket.created_at.year == 2023
    assert rocket.created_at.tzinfo is None
    assert rocket.preview_image == "https://raw.githubusercontent.com/acme/rocket/master/docs/logo.png"


@pytest.mark.asyncio
async def test_known_urls_skip_detail_fetch(trending_html: str) -> None:
    api_paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "github.com":
            return httpx.Response(200, text=trending_html)
        if request.url.host == "api.github.com":
            api_paths.append(request.url.path)
        return httpx.Response(404)

    crawler = make_crawler(handler)
    candidates = await crawler.fetch_trending(
        "weekly",
        limit=3,
        known_urls={"https://github.com/acme/rocket"},
    )

    assert len(candidates) == 3
    assert api_paths == ["/repos/widgets-inc/Dash.Board", "/repos/nova/stream"]


@pytest.mark.asyncio
async def test_limit_is_capped_by_listing_size_and_throttle_applies(trending_html: str, monkeypatch) -> None:
    sleeps = []
    real_sleep = asyncio.sleep

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)
        await real_sleep(0)

    monkeypatch.setattr("app.crawlers.github.asyncio.sleep", fake_sleep)

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "github.com":
            return httpx.Response(200, text=trending_html)
        return httpx.Response(404)

    crawler = make_crawler(handler, detail_delay_seconds=0.5, max_listing_entries=2)
    candidates = await crawler.fetch_trending("weekly", limit=10)

    assert len(candidates) == 2
    assert sleeps == [0.5]


@pytest.mark.asyncio
async def test_fetch_repository_propagates_errors() -> None:
    crawler = make_crawler(lambda request: httpx.Response(404, json={"message": "Not Found"}))

    with pytest.raises(httpx.HTTPStatusError):
        await crawler.fetch_repository("acme", "missing")
