from __future__ import annotations

import json
from typing import Any

import pytest

from app.crawlers.base import RepositoryCandidate
from app.services.enrichment_result import ASSESSMENT_DIMENSIONS, AssessmentError, BusinessAssessment
from app.services.scorer import (
    COMPLIANCE_WARNING,
    INTERNAL_COMPONENT_NOTE,
    BusinessValueScorer,
    apply_business_heuristics,
    parse_json_payload,
)


class FakeAIClient:
    def __init__(self, responses: list[Any]) -> None:
        self.responses = list(responses)
        self.calls: list[tuple[str, bool]] = []

    async def complete(self, prompt: str, *, force_json: bool = False) -> str:
        self.calls.append((prompt, force_json))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def assessment_json(score: Any = 8, summary: str = "Promising product") -> str:
    payload: dict[str, Any] = {
        "analysis": {name: {"score": 7, "description": f"{name} notes"} for name in ASSESSMENT_DIMENSIONS},
        "summary": summary,
    }
    if score is not None:
        payload["overall_score"] = score
    return json.dumps(payload)


def candidate(description: str, name: str = "toolbox") -> RepositoryCandidate:
    return RepositoryCandidate(owner="acme", name=name, description=description, language="Go")


def base_assessment(score: float = 8) -> BusinessAssessment:
    return BusinessAssessment.from_payload(json.loads(assessment_json(score)))


def test_crack_indicator_costs_three_points() -> None:
    adjusted = apply_business_heuristics(base_assessment(8), "Password crack utility for archives")

    assert adjusted.overall_score == 5
    assert COMPLIANCE_WARNING in adjusted.summary
    assert adjusted.adjustments == ["compliance_risk"]


def test_infrastructure_indicator_costs_one_point() -> None:
    adjusted = apply_business_heuristics(base_assessment(8), "Cloud storage SDK for Go")

    assert adjusted.overall_score == 7
    assert INTERNAL_COMPONENT_NOTE in adjusted.summary
    assert COMPLIANCE_WARNING not in adjusted.summary


def test_both_indicators_apply_independently() -> None:
    adjusted = apply_business_heuristics(base_assessment(8), "Keygen bundled with an sdk")

    assert adjusted.overall_score == 4
    assert adjusted.adjustments == ["compliance_risk", "internal_component"]


def test_score_never_drops_below_zero() -> None:
    adjusted = apply_business_heuristics(base_assessment(2), "activation code crack framework")

    assert adjusted.overall_score == 0


def test_neutral_text_keeps_model_score() -> None:
    adjusted = apply_business_heuristics(base_assessment(6.5), "Photo editing app for teams")

    assert adjusted.overall_score == 6.5
    assert adjusted.summary == "Promising product"


def test_parse_json_payload_strips_fences_and_prose() -> None:
    assert parse_json_payload('```json\n{"overall_score": 7}\n```') == {"overall_score": 7}
    assert parse_json_payload('Sure! Here it is: {"overall_score": 3} Hope it helps.') == {"overall_score": 3}
    assert parse_json_payload("no json here") is None
    assert parse_json_payload("[1, 2]") is None


def test_parse_json_payload_keeps_backticks_inside_string_values() -> None:
    raw = json.dumps({"overall_score": 8, "summary": "Install with ```pip install rocket``` and go"})

    assert parse_json_payload(raw) == {
        "overall_score": 8,
        "summary": "Install with ```pip install rocket``` and go",
    }
    fenced = f"```json\n{raw}\n```"
    assert parse_json_payload(fenced)["overall_score"] == 8


def test_from_payload_clamps_and_rejects_missing_score() -> None:
    assert BusinessAssessment.from_payload({"overall_score": 14}).overall_score == 10
    assert BusinessAssessment.from_payload({"overall_score": "7.5"}).overall_score == 7.5
    with pytest.raises(AssessmentError):
        BusinessAssessment.from_payload({"summary": "no score"})
    with pytest.raises(AssessmentError):
        BusinessAssessment.from_payload({"overall_score": "high"})


@pytest.mark.asyncio
async def test_assess_applies_heuristics_to_model_score() -> None:
    ai = FakeAIClient([assessment_json(8)])
    scorer = BusinessValueScorer(ai, language="English")

    result = await scorer.assess(candidate("Serial key generator"), translated_description=None)

    assert result.overall_score == 5
    assert len(ai.calls) == 1
    assert ai.calls[0][1] is True
    assert result.analysis["market_potential"].score == 7


@pytest.mark.asyncio
async def test_translated_description_is_part_of_heuristic_text() -> None:
    ai = FakeAIClient([assessment_json(8)])
    scorer = BusinessValueScorer(ai, language="English")

    result = await scorer.assess(candidate("Handy desktop helper"), translated_description="软件破解工具")

    assert result.overall_score == 5


@pytest.mark.asyncio
async def test_unparseable_response_gets_one_schema_retry() -> None:
    ai = FakeAIClient(["I think this project is great!", assessment_json(6)])
    scorer = BusinessValueScorer(ai, language="English")

    result = await scorer.assess(candidate("Photo editing app for teams"))

    assert result.overall_score == 6
    assert len(ai.calls) == 2
    retry_prompt = ai.calls[1][0]
    assert '"overall_score"' in retry_prompt
    assert "Now output JSON only." in retry_prompt


@pytest.mark.asyncio
async def test_missing_score_after_retry_is_terminal() -> None:
    ai = FakeAIClient([assessment_json(None), "still not json"])
    scorer = BusinessValueScorer(ai, language="English")

    with pytest.raises(AssessmentError):
        await scorer.assess(candidate("Photo editing app for teams"))
    assert len(ai.calls) == 2


@pytest.mark.asyncio
async def test_zero_is_a_valid_score() -> None:
    ai = FakeAIClient([assessment_json(0)])
    scorer = BusinessValueScorer(ai, language="English")

    result = await scorer.assess(candidate("Photo editing app for teams"))

    assert result.overall_score == 0
    assert len(ai.calls) == 1


@pytest.mark.asyncio
async def test_request_failure_is_terminal_without_schema_retry() -> None:
    ai = FakeAIClient([RuntimeError("backend down"), assessment_json(9)])
    scorer = BusinessValueScorer(ai, language="English")

    with pytest.raises(AssessmentError):
        await scorer.assess(candidate("Photo editing app for teams"))
    assert len(ai.calls) == 1
