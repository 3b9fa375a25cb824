"""Orchestrator to coordinate trending crawls, enrichment and storage"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config.database import SessionLocal
from app.crawlers.base import BaseCrawler, RepositoryCandidate, normalize_period
from app.crawlers.github import GitHubTrendingCrawler
from app.models.git_repo import GitRepo
from app.services.deduplicator import SeenRepositoryTracker
from app.services.enrichment import EnrichmentClient, EnrichmentError
from app.services.git_repo_store import GitRepoStore
from app.services.translation_cache import TranslationCacheService
from app.utils.log_sanitizer import sanitize_log_extra

logger = logging.getLogger(__name__)


class CandidateOutcome(str, Enum):
    PERSISTED = "persisted"
    SKIPPED_EXISTING = "skipped_existing"
    SKIPPED_FAILED = "skipped_failed"


@dataclass
class CrawlRunStats:
    """Counters for one crawl run"""

    period: str
    language: Optional[str] = None
    limit: int = 0
    total: int = 0
    new_processed: int = 0
    skipped_existing: int = 0
    skipped_failed: int = 0
    refreshed: int = 0
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
    errors: List[str] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return self.skipped_existing + self.skipped_failed

    def record(self, outcome: CandidateOutcome) -> None:
        if outcome is CandidateOutcome.PERSISTED:
            self.new_processed += 1
        elif outcome is CandidateOutcome.SKIPPED_EXISTING:
            self.skipped_existing += 1
        else:
            self.skipped_failed += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "language": self.language,
            "limit": self.limit,
            "total": self.total,
            "new_processed": self.new_processed,
            "skipped": self.skipped,
            "skipped_existing": self.skipped_existing,
            "skipped_failed": self.skipped_failed,
            "refreshed": self.refreshed,
            "errors": list(self.errors),
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class CrawlRunResult:
    stats: CrawlRunStats
    persisted: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"stats": self.stats.to_dict(), "persisted": list(self.persisted)}


class TrendingOrchestrator:
    """
    Runs the trending pipeline one candidate at a time

    Per candidate: storage lookup, then translate, summarize and assess,
    then upsert. Candidates that fail enrichment or persistence are counted
    and skipped; only a listing failure aborts the run.
    """

    def __init__(
        self,
        *,
        crawler: Optional[BaseCrawler] = None,
        enrichment: Optional[EnrichmentClient] = None,
        tracker: Optional[SeenRepositoryTracker] = None,
        session_factory: Callable[[], Session] = SessionLocal,
    ):
        self._session_factory = session_factory
        self.crawler = crawler or GitHubTrendingCrawler()
        self.enrichment = enrichment or EnrichmentClient(cache=TranslationCacheService(session_factory))
        self.tracker = tracker if tracker is not None else SeenRepositoryTracker()

    async def run(self, period: str = "daily", language: Optional[str] = None, limit: int = 25) -> CrawlRunResult:
        """
        Crawl one trending listing and enrich the new repositories

        Returns:
            CrawlRunResult with run statistics and the persisted records

        Raises:
            Exception: the listing could not be fetched or parsed
        """
        period = normalize_period(period)
        stats = CrawlRunStats(period=period, language=language, limit=limit)
        logger.info(f"Starting trending crawl: period={period}, language={language or 'all'}, limit={limit}")

        try:
            candidates = await self.crawler.fetch_trending(period, language, limit, known_urls=self.tracker)
        except Exception as e:
            logger.error(f"Trending listing failed for period={period}: {e}", exc_info=True)
            raise

        stats.total = len(candidates)
        persisted: List[Dict[str, Any]] = []

        db = self._session_factory()
        try:
            for index, candidate in enumerate(candidates, start=1):
                logger.info(f"[{index}/{len(candidates)}] Processing {candidate.full_name}")
                outcome, record = await self._process_candidate(db, candidate, period, stats)
                stats.record(outcome)
                if record is not None:
                    persisted.append(record.to_dict())
        finally:
            db.close()

        stats.completed_at = datetime.utcnow()
        logger.info(
            f"Trending crawl completed: total={stats.total}, new={stats.new_processed}, "
            f"existing={stats.skipped_existing}, failed={stats.skipped_failed}"
        )
        return CrawlRunResult(stats=stats, persisted=persisted)

    async def analyze_repository(self, owner: str, repo: str, period: Optional[str] = None) -> Dict[str, Any]:
        """
        Fetch, enrich and store a single repository, even if already stored

        Every failure propagates to the caller.
        """
        if period is not None:
            period = normalize_period(period)

        candidate = await self.crawler.fetch_repository(owner, repo)
        enrichment = await self.enrichment.enrich(candidate)

        db = self._session_factory()
        try:
            record = GitRepoStore(db).upsert_enriched(candidate, enrichment, period=period)
            db.commit()
            snapshot = record.to_dict()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        self.tracker.add(candidate.canonical_url)
        logger.info(f"Analyzed {candidate.full_name}: score={enrichment.overall_score}")
        return snapshot

    async def _process_candidate(
        self,
        db: Session,
        candidate: RepositoryCandidate,
        period: str,
        stats: CrawlRunStats,
    ) -> Tuple[CandidateOutcome, Optional[GitRepo]]:
        store = GitRepoStore(db)
        url = candidate.canonical_url

        try:
            existing = store.find_by_url(url)
            if existing is not None:
                if store.refresh_metrics(existing, candidate):
                    db.commit()
                    stats.refreshed += 1
                self.tracker.add(url)
                logger.debug(f"Repository already stored, skipping enrichment: {candidate.full_name}")
                return CandidateOutcome.SKIPPED_EXISTING, None
        except SQLAlchemyError as e:
            db.rollback()
            self._log_candidate_failure(candidate, "lookup", e, stats)
            return CandidateOutcome.SKIPPED_FAILED, None

        try:
            enrichment = await self.enrichment.enrich(candidate)
        except EnrichmentError as e:
            self._log_candidate_failure(candidate, "enrichment", e, stats)
            return CandidateOutcome.SKIPPED_FAILED, None
        except Exception as e:
            self._log_candidate_failure(candidate, "enrichment", e, stats, exc_info=True)
            return CandidateOutcome.SKIPPED_FAILED, None

        try:
            record = store.upsert_enriched(candidate, enrichment, period=period)
            db.commit()
        except (SQLAlchemyError, ValueError) as e:
            db.rollback()
            self._log_candidate_failure(candidate, "persistence", e, stats)
            return CandidateOutcome.SKIPPED_FAILED, None

        self.tracker.add(url)
        logger.info(f"Saved {candidate.full_name} with score {enrichment.overall_score}")
        return CandidateOutcome.PERSISTED, record

    def _log_candidate_failure(
        self,
        candidate: RepositoryCandidate,
        stage: str,
        error: Exception,
        stats: CrawlRunStats,
        exc_info: bool = False,
    ) -> None:
        stats.errors.append(f"{candidate.full_name}: {stage}: {error}")
        logger.error(
            f"Skipping {candidate.full_name} after {stage} failure: {error}",
            exc_info=exc_info,
            extra=sanitize_log_extra(
                repository=candidate.full_name,
                repository_url=candidate.canonical_url,
                description=candidate.description,
                language=candidate.language,
                topics=candidate.topics,
                stage=stage,
            ),
        )
