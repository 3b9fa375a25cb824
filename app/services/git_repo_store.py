"""Upsert of enriched repositories keyed by canonical URL."""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.crawlers.base import RepositoryCandidate, canonical_repo_url
from app.models.git_repo import GitRepo
from app.services.enrichment_result import EnrichmentResult

logger = logging.getLogger(__name__)

# Columns that change between runs without re-enrichment
_METRIC_FIELDS = ("stars", "forks", "watchers", "open_issues", "size_kb", "stars_in_period")


class GitRepoStore:
    """Repository rows for one session; the caller owns commit and rollback."""

    def __init__(self, db: Session):
        self.db = db

    def find_by_url(self, url: str) -> Optional[GitRepo]:
        return self.db.query(GitRepo).filter_by(url=url.lower()).first()

    def upsert_enriched(
        self,
        candidate: RepositoryCandidate,
        enrichment: EnrichmentResult,
        *,
        period: Optional[str] = None,
    ) -> GitRepo:
        """
        Create or update the row for `candidate` with enrichment fields

        Raises:
            ValueError: the enrichment has no summary or score
        """
        if not enrichment.is_valid():
            raise ValueError(f"Refusing to store unscored enrichment for {candidate.full_name}")

        url = canonical_repo_url(candidate.owner, candidate.name)
        existing = self.find_by_url(url)
        row = _map_candidate_row(candidate, existing)
        row.update(
            {
                "url": url,
                "description_translated": enrichment.description_translated,
                "project_summary": enrichment.project_summary,
                "business_analysis": enrichment.assessment.to_dict(),
                "overall_score": enrichment.overall_score,
                "trending_period": _pick_text(period, existing.trending_period if existing else None),
            }
        )

        if existing is None:
            record = GitRepo(**row)
            self.db.add(record)
            logger.debug(f"Created repository row {url}")
        else:
            for field_name, value in row.items():
                setattr(existing, field_name, value)
            existing.updated_at = datetime.utcnow()
            record = existing
            logger.debug(f"Updated repository row {url}")

        self.db.flush()
        return record

    def refresh_metrics(self, record: GitRepo, candidate: RepositoryCandidate) -> bool:
        """
        Lightweight refresh of volatile counts for an already stored row

        Unknown values on the candidate never overwrite known ones.

        Returns:
            True when any column changed
        """
        changed = False
        for field_name in _METRIC_FIELDS:
            value = getattr(candidate, field_name)
            if value is None or isinstance(value, bool):
                continue
            if getattr(record, field_name) != value:
                setattr(record, field_name, value)
                changed = True

        for field_name in ("description", "language", "preview_image"):
            value = _pick_text(getattr(candidate, field_name), None)
            if value and not getattr(record, field_name):
                setattr(record, field_name, value)
                changed = True

        if changed:
            record.updated_at = datetime.utcnow()
            self.db.flush()
        return changed


def _map_candidate_row(candidate: RepositoryCandidate, existing: Optional[GitRepo]) -> dict[str, Any]:
    """Column values from a candidate, keeping stored values where it has none."""

    def stored(field_name: str) -> Any:
        return getattr(existing, field_name) if existing is not None else None

    return {
        "github_id": candidate.github_id if candidate.github_id is not None else stored("github_id"),
        "owner": candidate.owner,
        "name": candidate.name,
        "full_name": candidate.full_name,
        "html_url": _pick_text(candidate.html_url, stored("html_url")),
        "homepage": _pick_text(candidate.homepage, stored("homepage")),
        "description": _pick_text(candidate.description, stored("description")),
        "language": _pick_text(candidate.language, stored("language")),
        "stars": _pick_int(candidate.stars, stored("stars")),
        "forks": _pick_int(candidate.forks, stored("forks")),
        "watchers": _pick_int(candidate.watchers, stored("watchers")),
        "open_issues": _pick_int(candidate.open_issues, stored("open_issues")),
        "size_kb": _pick_int(candidate.size_kb, stored("size_kb")),
        "stars_in_period": (
            candidate.stars_in_period if candidate.stars_in_period is not None else stored("stars_in_period")
        ),
        "topics": _pick_tags(candidate.topics, stored("topics")),
        "license": _pick_text(candidate.license, stored("license")),
        "is_fork": bool(candidate.is_fork),
        "default_branch": _pick_text(candidate.default_branch, stored("default_branch")),
        "preview_image": _pick_text(candidate.preview_image, stored("preview_image")),
        "repo_created_at": candidate.created_at or stored("repo_created_at"),
        "repo_updated_at": candidate.updated_at or stored("repo_updated_at"),
        "repo_pushed_at": candidate.pushed_at or stored("repo_pushed_at"),
    }


def _pick_text(primary: Any, secondary: Any) -> str | None:
    if isinstance(primary, str) and primary.strip():
        return primary.strip()
    if isinstance(secondary, str) and secondary.strip():
        return secondary.strip()
    return None


def _pick_int(primary: Any, secondary: Any) -> int:
    for value in (primary, secondary):
        if isinstance(value, bool):
            continue
        if isinstance(value, int):
            return max(value, 0)
    return 0


def _pick_tags(primary: Any, secondary: Any) -> list[str]:
    for value in (primary, secondary):
        if isinstance(value, (list, tuple)):
            tags = [str(tag).strip() for tag in value if str(tag).strip()]
            if tags:
                return tags
    return []
