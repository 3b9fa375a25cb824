"""Trending crawl cadences, run guard and in-process scheduling loop."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Any, Callable, Optional, Sequence

from dateutil.relativedelta import FR, MO, SA, SU, TH, TU, WE, relativedelta

from app.config.settings import settings
from app.crawlers.base import TRENDING_PERIODS, normalize_period
from app.orchestrator import CrawlRunResult, TrendingOrchestrator
from app.services.deduplicator import SeenRepositoryTracker

logger = logging.getLogger(__name__)

_WEEKDAYS = (MO, TU, WE, TH, FR, SA, SU)


class CrawlAlreadyRunningError(RuntimeError):
    """A run was requested while another run is active."""


@dataclass(frozen=True)
class CrawlCadence:
    """When and how much to crawl for one trending period."""

    period: str
    limit: int
    hour: int = 3
    weekday: int = 0
    day: int = 1

    def next_run_after(self, now: datetime) -> datetime:
        """First fire time strictly after `now`."""
        at_hour = relativedelta(hour=self.hour, minute=0, second=0, microsecond=0)

        if self.period == "daily":
            candidate = now + at_hour
            if candidate <= now:
                candidate += relativedelta(days=1)
        elif self.period == "weekly":
            candidate = now + at_hour + relativedelta(weekday=_WEEKDAYS[self.weekday])
            if candidate <= now:
                candidate += relativedelta(weeks=1)
        else:
            # day= clamps to the last day of shorter months
            candidate = now + at_hour + relativedelta(day=self.day)
            if candidate <= now:
                candidate = candidate + relativedelta(months=1, day=self.day)
        return candidate


def default_cadences() -> list[CrawlCadence]:
    """Daily, weekly and monthly cadences from settings."""
    limits = {
        "daily": settings.TRENDING_DAILY_LIMIT,
        "weekly": settings.TRENDING_WEEKLY_LIMIT,
        "monthly": settings.TRENDING_MONTHLY_LIMIT,
    }
    return [
        CrawlCadence(
            period=period,
            limit=limits[period],
            hour=settings.TRENDING_SCHEDULE_HOUR,
            weekday=settings.TRENDING_WEEKLY_WEEKDAY,
            day=settings.TRENDING_MONTHLY_DAY,
        )
        for period in TRENDING_PERIODS
    ]


def parse_languages(raw: Any) -> list[str]:
    """Language filters from a comma-separated string or a sequence."""
    if raw is None:
        return []
    if isinstance(raw, str):
        values = raw.split(",")
    else:
        values = [str(value) for value in raw]

    languages: list[str] = []
    for value in values:
        language = value.strip().lower()
        if language and language not in languages:
            languages.append(language)
    return languages


class TrendingCrawlScheduler:
    """
    Single-worker trigger point for trending crawls

    Manual triggers and cadence-driven runs share one guard: a run requested
    while another is active is rejected with CrawlAlreadyRunningError rather
    than queued.
    """

    def __init__(
        self,
        *,
        orchestrator: Optional[TrendingOrchestrator] = None,
        cadences: Optional[Sequence[CrawlCadence]] = None,
        languages: Optional[Sequence[str]] = None,
        language_limit: Optional[int] = None,
        period_pause_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.orchestrator = orchestrator or TrendingOrchestrator(tracker=SeenRepositoryTracker())
        self.cadences = list(cadences) if cadences is not None else default_cadences()
        self.languages = parse_languages(languages if languages is not None else settings.TRENDING_LANGUAGES)
        self.language_limit = language_limit if language_limit is not None else settings.TRENDING_LANGUAGE_LIMIT
        self.period_pause_seconds = (
            period_pause_seconds if period_pause_seconds is not None else settings.TRENDING_PERIOD_PAUSE_SECONDS
        )
        self._clock = clock
        self._running = False
        self._next_runs: dict[str, datetime] = {}
        self.last_run: Optional[dict[str, Any]] = None
        self.last_error: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def tracker(self) -> SeenRepositoryTracker:
        return self.orchestrator.tracker

    async def trigger_run(
        self,
        period: str,
        language: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> CrawlRunResult:
        """
        Run one crawl now

        Raises:
            CrawlAlreadyRunningError: another run is active
            ValueError: unknown period
        """
        period = normalize_period(period)
        self._acquire(f"{period} crawl")
        try:
            return await self._run_once(period, language, limit)
        finally:
            self._running = False

    async def run_all_periods(self) -> dict[str, Any]:
        """
        Crawl every cadence in order, then each configured language per period

        A failing period is logged and the sweep moves on. The guard is held
        for the whole sweep.
        """
        self._acquire("full trending sweep")
        runs: list[dict[str, Any]] = []
        errors: list[str] = []
        started_at = datetime.utcnow()

        targets: list[tuple[str, Optional[str], int]] = [
            (cadence.period, None, cadence.limit) for cadence in self.cadences
        ]
        for cadence in self.cadences:
            for language in self.languages:
                targets.append((cadence.period, language, self.language_limit))

        try:
            for index, (period, language, limit) in enumerate(targets):
                if index and self.period_pause_seconds > 0:
                    await asyncio.sleep(self.period_pause_seconds)
                try:
                    result = await self._run_once(period, language, limit)
                    runs.append(result.stats.to_dict())
                except Exception as e:
                    logger.error(f"Trending sweep failed for {period}/{language or 'all'}: {e}")
                    errors.append(f"{period}/{language or 'all'}: {e}")
        finally:
            self._running = False

        return {
            "started_at": started_at.isoformat(),
            "completed_at": datetime.utcnow().isoformat(),
            "runs": runs,
            "total_new": sum(run["new_processed"] for run in runs),
            "errors": errors,
        }

    async def analyze_repository(self, owner: str, repo: str, period: Optional[str] = None) -> dict[str, Any]:
        """Enrich one repository on demand under the run guard."""
        self._acquire(f"analysis of {owner}/{repo}")
        try:
            return await self.orchestrator.analyze_repository(owner, repo, period=period)
        finally:
            self._running = False

    async def run_due(self, now: Optional[datetime] = None) -> list[CrawlRunResult]:
        """Trigger every cadence whose fire time has passed."""
        now = now or self._clock()
        self._schedule_missing(now)
        results: list[CrawlRunResult] = []

        for cadence in self.cadences:
            if self._next_runs[cadence.period] > now:
                continue
            self._next_runs[cadence.period] = cadence.next_run_after(now)
            try:
                results.append(await self.trigger_run(cadence.period, limit=cadence.limit))
            except CrawlAlreadyRunningError as e:
                logger.warning(f"Scheduled {cadence.period} crawl rejected: {e}")
            except Exception as e:
                logger.error(f"Scheduled {cadence.period} crawl failed: {e}", exc_info=True)

        return results

    async def serve(self, stop_event: Optional[asyncio.Event] = None, max_sleep_seconds: float = 300.0) -> None:
        """Run cadences until `stop_event` is set."""
        stop_event = stop_event or asyncio.Event()
        self._schedule_missing(self._clock())
        logger.info(f"Trending scheduler started: {self._format_next_runs()}")

        while not stop_event.is_set():
            await self.run_due()
            next_fire = min(self._next_runs.values(), default=None)
            if next_fire is None:
                return
            wait_seconds = (next_fire - self._clock()).total_seconds()
            wait_seconds = max(1.0, min(max_sleep_seconds, wait_seconds))
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=wait_seconds)
            except asyncio.TimeoutError:
                continue

        logger.info("Trending scheduler stopped")

    def status(self) -> dict[str, Any]:
        return {
            "is_running": self.is_running,
            "tracked_repositories": len(self.tracker),
            "last_run": self.last_run,
            "last_error": self.last_error,
            "next_runs": {period: fire.isoformat() for period, fire in self._next_runs.items()},
        }

    def clear_seen(self) -> int:
        """Empty the in-memory tracker; storage lookups keep dedup correct."""
        return self.tracker.clear()

    def _acquire(self, description: str) -> None:
        if self._running:
            raise CrawlAlreadyRunningError(f"Cannot start {description}: a crawl is already running")
        self._running = True

    async def _run_once(self, period: str, language: Optional[str], limit: Optional[int]) -> CrawlRunResult:
        if limit is None:
            limit = self._default_limit(period)
        try:
            result = await self.orchestrator.run(period, language, limit)
        except Exception as e:
            self.last_error = f"{period}: {e}"
            raise
        self.last_run = result.stats.to_dict()
        return result

    def _default_limit(self, period: str) -> int:
        for cadence in self.cadences:
            if cadence.period == period:
                return cadence.limit
        return settings.TRENDING_MAX_LISTING_ENTRIES

    def _schedule_missing(self, now: datetime) -> None:
        for cadence in self.cadences:
            if cadence.period not in self._next_runs:
                self._next_runs[cadence.period] = cadence.next_run_after(now)

    def _format_next_runs(self) -> str:
        return ", ".join(f"{period} at {fire.isoformat()}" for period, fire in self._next_runs.items())
