"""Enrichment client: translate, summarize and assess one repository"""

from typing import Optional
import logging

from app.crawlers.base import RepositoryCandidate
from app.services.ai_client import AIClient
from app.services.enrichment_result import (
    AssessmentError,
    BusinessAssessment,
    EnrichmentError,
    EnrichmentResult,
    SummaryError,
)
from app.services.scorer import BusinessValueScorer
from app.services.summarizer import SummarizerService
from app.services.translation_cache import TranslationCacheService

logger = logging.getLogger(__name__)

__all__ = [
    "AssessmentError",
    "EnrichmentClient",
    "EnrichmentError",
    "EnrichmentResult",
    "SummaryError",
]


class EnrichmentClient:
    """
    Facade over the summarizer and scorer sharing one AI client

    Each operation can be called on its own; `enrich` chains them with the
    failure policy of the pipeline: translation degrades, summary and
    assessment failures raise.
    """

    def __init__(
        self,
        ai_client: Optional[AIClient] = None,
        cache: Optional[TranslationCacheService] = None,
        summarizer: Optional[SummarizerService] = None,
        scorer: Optional[BusinessValueScorer] = None,
    ):
        if summarizer is None or scorer is None:
            ai_client = ai_client or AIClient()
        self.summarizer = summarizer or SummarizerService(ai_client, cache)
        self.scorer = scorer or BusinessValueScorer(ai_client)

    async def translate(self, text: Optional[str]) -> Optional[str]:
        return await self.summarizer.translate(text)

    async def summarize(
        self,
        candidate: RepositoryCandidate,
        translated_description: Optional[str] = None,
    ) -> str:
        return await self.summarizer.summarize(candidate, translated_description)

    async def assess_business_value(
        self,
        candidate: RepositoryCandidate,
        translated_description: Optional[str] = None,
        project_summary: Optional[str] = None,
    ) -> BusinessAssessment:
        return await self.scorer.assess(candidate, translated_description, project_summary)

    async def enrich(self, candidate: RepositoryCandidate) -> EnrichmentResult:
        """
        Run translate, summarize and assess in order

        Raises:
            SummaryError: summary generation failed
            AssessmentError: no usable assessment
        """
        translated = await self.translate(candidate.description)
        summary = await self.summarize(candidate, translated)
        assessment = await self.assess_business_value(candidate, translated, summary)

        result = EnrichmentResult(
            description_translated=translated,
            project_summary=summary,
            assessment=assessment,
        )
        if not result.is_valid():
            raise AssessmentError(f"Incomplete enrichment for {candidate.full_name}")

        logger.info(f"Enriched {candidate.full_name}: score={result.overall_score}")
        return result
