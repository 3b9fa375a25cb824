"""In-process record of repositories already handled"""

from typing import Iterator, Set
import logging

from app.crawlers.base import canonical_repo_url

logger = logging.getLogger(__name__)


class SeenRepositoryTracker:
    """
    Canonical URLs seen during this process's lifetime

    A pre-filter only: storage stays the authority on whether a repository
    exists, so clearing the tracker costs extra detail fetches and nothing
    else.
    """

    def __init__(self):
        self._urls: Set[str] = set()

    def add(self, url: str) -> None:
        self._urls.add(url.lower())

    def add_repository(self, owner: str, name: str) -> None:
        self._urls.add(canonical_repo_url(owner, name))

    def clear(self) -> int:
        """Forget every URL; returns how many were dropped."""
        count = len(self._urls)
        self._urls.clear()
        logger.info(f"Cleared {count} tracked repositories")
        return count

    def __contains__(self, url: object) -> bool:
        return isinstance(url, str) and url.lower() in self._urls

    def __len__(self) -> int:
        return len(self._urls)

    def __iter__(self) -> Iterator[str]:
        return iter(self._urls)
