"""Translation and project summary generation using the AI backend"""

from typing import Optional
import logging

from app.config.settings import settings
from app.crawlers.base import RepositoryCandidate
from app.services.ai_client import AIClient
from app.services.enrichment_result import SummaryError
from app.services.translation_cache import TranslationCacheService
from app.utils.log_sanitizer import sanitize_log_extra

logger = logging.getLogger(__name__)


class SummarizerService:
    """Service to translate descriptions and summarize repositories"""

    def __init__(
        self,
        ai_client: Optional[AIClient] = None,
        cache: Optional[TranslationCacheService] = None,
        language: Optional[str] = None,
    ):
        self.ai_client = ai_client or AIClient()
        self.cache = cache
        self.language = language or settings.ENRICHMENT_LANGUAGE

    async def translate(self, text: Optional[str]) -> Optional[str]:
        """
        Translate text into the enrichment language

        The cache is consulted first. Translation is best effort: on any AI
        failure the original text is returned unchanged.

        Args:
            text: Source text, usually a repository description

        Returns:
            Translated text, or the original text when translation failed
        """
        if not text or not text.strip():
            return text

        if self.cache is not None:
            cached = self.cache.get(text)
            if cached:
                logger.debug("Translation served from cache")
                return cached

        try:
            translated = (await self.ai_client.complete(self._build_translation_prompt(text))).strip()
        except Exception as e:
            logger.warning(
                f"Translation failed, keeping original text: {e}",
                extra=sanitize_log_extra(text_chars=len(text)),
            )
            return text

        if not translated:
            logger.warning("Translation returned empty text, keeping original text")
            return text

        if self.cache is not None:
            self.cache.put(text, translated)
        return translated

    async def summarize(
        self,
        candidate: RepositoryCandidate,
        translated_description: Optional[str] = None,
    ) -> str:
        """
        Generate a project summary for a repository

        Raises:
            SummaryError: the AI call failed or returned no text
        """
        prompt = self._build_summary_prompt(candidate, translated_description)
        try:
            summary = (await self.ai_client.complete(prompt)).strip()
        except Exception as e:
            raise SummaryError(f"Failed to summarize {candidate.full_name}: {e}") from e

        if not summary:
            raise SummaryError(f"Empty summary for {candidate.full_name}")
        return summary

    def _build_translation_prompt(self, text: str) -> str:
        return f"""Translate the following text into {self.language}.

Keep product names, code identifiers and URLs unchanged.
Return only the translation, without quotes, notes or explanations.

Text:
{text}"""

    def _build_summary_prompt(
        self,
        candidate: RepositoryCandidate,
        translated_description: Optional[str],
    ) -> str:
        topics = ", ".join(candidate.topics[:15]) if candidate.topics else "none"

        prompt = f"""Write a project summary in {self.language} for this open source repository.

Repository: {candidate.full_name}
Description: {candidate.description or "not provided"}
Translated description: {translated_description or "not provided"}
Primary language: {candidate.language or "unknown"}
Stars: {candidate.stars if candidate.stars is not None else "unknown"}
Forks: {candidate.forks if candidate.forks is not None else "unknown"}
Topics: {topics}
License: {candidate.license or "unknown"}

The summary should:
- Explain what the project does and who it is for
- Mention the key technologies and what sets it apart
- Be 3-5 sentences of plain text, no markdown or lists"""

        return prompt
