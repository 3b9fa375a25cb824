"""Enrichment result types and errors"""

from __future__ import annotations

from dataclasses import dataclass, field
import math
from typing import Any, Dict, List, Optional

ASSESSMENT_DIMENSIONS = (
    "technical_value",
    "market_potential",
    "business_model",
    "risk_assessment",
    "investment_value",
)

MIN_SCORE = 0.0
MAX_SCORE = 10.0


class EnrichmentError(Exception):
    """Enrichment of one candidate failed."""


class SummaryError(EnrichmentError):
    """Project summary could not be generated."""


class AssessmentError(EnrichmentError):
    """Business assessment missing or unparseable after the reinforced retry."""


def clamp_score(value: float) -> float:
    return max(MIN_SCORE, min(MAX_SCORE, value))


def coerce_score(value: Any) -> Optional[float]:
    """Numeric score from a JSON value, or None when it is not a number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        score = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(score) or math.isinf(score):
        return None
    return score


@dataclass
class AssessmentItem:
    score: Optional[float] = None
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"score": self.score, "description": self.description}


@dataclass
class BusinessAssessment:
    """
    Parsed commercial-value assessment

    `overall_score` is always a number in [0, 10]; an assessment without
    one cannot be constructed through `from_payload`.
    """

    overall_score: float
    analysis: Dict[str, AssessmentItem] = field(default_factory=dict)
    summary: str = ""
    adjustments: List[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Any) -> "BusinessAssessment":
        if not isinstance(payload, dict):
            raise AssessmentError("Assessment payload is not a JSON object")

        overall = coerce_score(payload.get("overall_score"))
        if overall is None:
            raise AssessmentError("Assessment payload has no numeric overall_score")

        raw_analysis = payload.get("analysis")
        if not isinstance(raw_analysis, dict):
            raw_analysis = {}

        analysis: Dict[str, AssessmentItem] = {}
        for dimension in ASSESSMENT_DIMENSIONS:
            item = raw_analysis.get(dimension)
            if isinstance(item, dict):
                score = coerce_score(item.get("score"))
                analysis[dimension] = AssessmentItem(
                    score=clamp_score(score) if score is not None else None,
                    description=str(item.get("description") or "").strip(),
                )
            else:
                analysis[dimension] = AssessmentItem()

        summary = payload.get("summary")
        return cls(
            overall_score=clamp_score(overall),
            analysis=analysis,
            summary=summary.strip() if isinstance(summary, str) else "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_score": self.overall_score,
            "analysis": {name: item.to_dict() for name, item in self.analysis.items()},
            "summary": self.summary,
            "adjustments": list(self.adjustments),
        }


@dataclass
class EnrichmentResult:
    """Output of translate + summarize + assess for one candidate"""

    description_translated: Optional[str]
    project_summary: Optional[str]
    assessment: Optional[BusinessAssessment]

    @property
    def overall_score(self) -> Optional[float]:
        return self.assessment.overall_score if self.assessment else None

    def is_valid(self) -> bool:
        """Only valid results may be written to storage."""
        return bool(self.project_summary) and self.overall_score is not None
