"""Commercial-value assessment of repositories"""

from dataclasses import replace
import json
import logging
import re
from typing import Any, Dict, Optional

from app.config.settings import settings
from app.crawlers.base import RepositoryCandidate
from app.services.ai_client import AIClient
from app.services.enrichment_result import (
    ASSESSMENT_DIMENSIONS,
    AssessmentError,
    BusinessAssessment,
    clamp_score,
)
from app.utils.log_sanitizer import sanitize_log_extra

logger = logging.getLogger(__name__)

CRACK_PATTERN = re.compile(
    r"crack|keygen|license[\s_-]?key|serial[\s_-]?(?:key|number)|activation[\s_-]?(?:key|code)"
    r"|破解|注册码|激活码|授权码|序列号",
    re.IGNORECASE,
)
INFRASTRUCTURE_PATTERN = re.compile(
    r"sdk|framework|librar(?:y|ies)|driver|algorithm|compiler|protocol|middleware"
    r"|框架|类库|驱动|算法|编译器|协议|中间件",
    re.IGNORECASE,
)

CRACK_PENALTY = 3
INFRASTRUCTURE_PENALTY = 1

COMPLIANCE_WARNING = (
    "Compliance warning: the project appears to involve cracking, license keys or "
    "activation codes, which carries serious legal and licensing risk."
)
INTERNAL_COMPONENT_NOTE = (
    "Note: this is infrastructure-level software and is better suited as an internal "
    "component than as a direct product."
)

STRICT_JSON_INSTRUCTION = """

Respond with a single JSON object only. Do not wrap it in markdown and do not add any text before or after it."""

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def _schema_example() -> str:
    analysis = {
        name: {"score": "<number 0-10>", "description": "<text>"} for name in ASSESSMENT_DIMENSIONS
    }
    return json.dumps(
        {"overall_score": "<number 0-10>", "analysis": analysis, "summary": "<text>"},
        indent=2,
    )


def parse_json_payload(content: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Extract a JSON object from a model response

    The raw text is tried as-is first, so string values may contain
    backticks. Failing that, the first markdown code fence is tried, then
    the span from the first '{' to the last '}'.
    """
    if not content:
        return None

    text = content.strip()
    candidates = [text]
    fenced = _FENCE_PATTERN.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start : end + 1])

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(data, dict):
            return data
    return None


def apply_business_heuristics(assessment: BusinessAssessment, text: str) -> BusinessAssessment:
    """
    Deterministic score adjustments on top of the model's assessment

    Crack/license-key indicators cost 3 points, pure infrastructure
    indicators cost 1 point. Both may apply; the result stays in [0, 10].
    """
    score = assessment.overall_score
    summary = assessment.summary
    adjustments = list(assessment.adjustments)
    haystack = text or ""

    if CRACK_PATTERN.search(haystack):
        score = max(0.0, score - CRACK_PENALTY)
        summary = _append_note(summary, COMPLIANCE_WARNING)
        adjustments.append("compliance_risk")

    if INFRASTRUCTURE_PATTERN.search(haystack):
        score = max(0.0, score - INFRASTRUCTURE_PENALTY)
        summary = _append_note(summary, INTERNAL_COMPONENT_NOTE)
        adjustments.append("internal_component")

    return replace(assessment, overall_score=clamp_score(score), summary=summary, adjustments=adjustments)


def _append_note(summary: str, note: str) -> str:
    return f"{summary}\n\n{note}" if summary else note


class BusinessValueScorer:
    """Asks the AI backend for a structured assessment and applies heuristics"""

    def __init__(self, ai_client: Optional[AIClient] = None, language: Optional[str] = None):
        self.ai_client = ai_client or AIClient()
        self.language = language or settings.ENRICHMENT_LANGUAGE

    async def assess(
        self,
        candidate: RepositoryCandidate,
        translated_description: Optional[str] = None,
        project_summary: Optional[str] = None,
    ) -> BusinessAssessment:
        """
        Assess the commercial potential of a repository

        A response that is not JSON or has no numeric overall_score gets one
        retry with the schema restated inline. There is no fallback score.

        Raises:
            AssessmentError: the AI call failed or both attempts were unusable
        """
        base_prompt = self._build_prompt(candidate, translated_description, project_summary)
        prompts = (
            base_prompt + STRICT_JSON_INSTRUCTION,
            self._build_schema_retry_prompt(base_prompt),
        )

        last_error: Optional[str] = None
        for attempt, prompt in enumerate(prompts, start=1):
            try:
                content = await self.ai_client.complete(prompt, force_json=True)
            except Exception as e:
                raise AssessmentError(f"Assessment request failed for {candidate.full_name}: {e}") from e

            try:
                assessment = BusinessAssessment.from_payload(parse_json_payload(content))
            except AssessmentError as e:
                last_error = str(e)
                logger.warning(
                    f"Unusable assessment for {candidate.full_name} (attempt {attempt}/{len(prompts)}): {e}",
                    extra=sanitize_log_extra(response=content),
                )
                continue

            text = " ".join(
                part
                for part in (candidate.name, candidate.full_name, candidate.description, translated_description)
                if part
            )
            adjusted = apply_business_heuristics(assessment, text)
            logger.debug(
                f"Assessed {candidate.full_name}: model={assessment.overall_score}, "
                f"final={adjusted.overall_score}, adjustments={adjusted.adjustments}"
            )
            return adjusted

        raise AssessmentError(f"No valid assessment for {candidate.full_name}: {last_error}")

    def _build_prompt(
        self,
        candidate: RepositoryCandidate,
        translated_description: Optional[str],
        project_summary: Optional[str],
    ) -> str:
        topics = ", ".join(candidate.topics[:15]) if candidate.topics else "none"

        prompt = f"""Assess the commercial value of this open source repository.

Repository: {candidate.full_name}
Description: {candidate.description or "not provided"}
Translated description: {translated_description or "not provided"}
Project summary: {project_summary or "not provided"}
Primary language: {candidate.language or "unknown"}
Stars: {candidate.stars if candidate.stars is not None else "unknown"}
Forks: {candidate.forks if candidate.forks is not None else "unknown"}
Topics: {topics}
License: {candidate.license or "unknown"}

Score each dimension from 0 to 10 and explain it briefly in {self.language}:
- technical_value: engineering quality and innovation
- market_potential: size of the addressable market and demand
- business_model: realistic ways to make money with it
- risk_assessment: legal, licensing and competitive risk (10 = lowest risk)
- investment_value: attractiveness for building a product or company

Return a JSON object with:
1. "overall_score": number from 0 to 10
2. "analysis": an object with the five dimensions above, each {{"score": number, "description": text}}
3. "summary": a short overall verdict in {self.language}"""

        return prompt

    def _build_schema_retry_prompt(self, base_prompt: str) -> str:
        return f"""{base_prompt}

Your previous answer could not be used. The response MUST be valid JSON with exactly this structure:
{_schema_example()}

"overall_score" is required and must be a number.
Now output JSON only."""
