"""Base crawler class and the repository candidate it produces"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Container
from dataclasses import dataclass, field
from datetime import datetime
import logging
from typing import List, Optional

from app.config.settings import settings

GITHUB_WEB_URL = "https://github.com"

TRENDING_PERIODS = ("daily", "weekly", "monthly")


def canonical_repo_url(owner: str, name: str) -> str:
    """Deduplication key: scraped candidates have no reliable numeric ID."""
    return f"{GITHUB_WEB_URL}/{owner.strip()}/{name.strip()}".lower()


def normalize_period(period: str) -> str:
    value = (period or "").strip().lower()
    if value not in TRENDING_PERIODS:
        raise ValueError(f"Unsupported trending period: {period!r}")
    return value


@dataclass
class RepositoryCandidate:
    """
    Repository discovered from the trending listing, not yet persisted

    Counts are None when unknown so that a partial candidate never
    overwrites previously known values with zeros.
    """

    owner: str
    name: str
    description: Optional[str] = None
    language: Optional[str] = None
    stars: Optional[int] = None
    forks: Optional[int] = None
    watchers: Optional[int] = None
    open_issues: Optional[int] = None
    size_kb: Optional[int] = None
    stars_in_period: Optional[int] = None
    topics: List[str] = field(default_factory=list)
    license: Optional[str] = None
    is_fork: bool = False
    github_id: Optional[int] = None
    html_url: Optional[str] = None
    homepage: Optional[str] = None
    default_branch: Optional[str] = None
    preview_image: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    pushed_at: Optional[datetime] = None
    detail_fetched: bool = False

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def canonical_url(self) -> str:
        return canonical_repo_url(self.owner, self.name)

    def __repr__(self):
        return f"<RepositoryCandidate {self.full_name} ({self.stars} stars)>"


class BaseCrawler(ABC):
    """
    Base crawler class

    Trending sources inherit from this class
    """

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.user_agent = settings.USER_AGENT
        self.delay = settings.TRENDING_DETAIL_DELAY_SECONDS

    @abstractmethod
    async def fetch_trending(
        self,
        period: str,
        language: Optional[str] = None,
        limit: int = 25,
        known_urls: Optional[Container[str]] = None,
    ) -> List[RepositoryCandidate]:
        """
        Fetch one listing page and the detail of each listed repository

        Args:
            period: daily, weekly or monthly
            language: optional language filter
            limit: maximum number of candidates
            known_urls: canonical URLs whose detail fetch can be skipped

        Returns:
            Ordered list of RepositoryCandidate objects
        """
        pass

    def log_start(self, target: str):
        """Log crawl start"""
        self.logger.info(f"Starting {self.__class__.__name__}: {target}")

    def log_end(self, count: int):
        """Log crawl end with count"""
        self.logger.info(f"Finished {self.__class__.__name__}: {count} repositories")

    def log_error(self, error: Exception):
        """Log error"""
        self.logger.error(f"Error in {self.__class__.__name__}: {str(error)}", exc_info=True)
