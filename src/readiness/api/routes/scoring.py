"""Scoring routes for the readiness API.

Provides POST /v1/score (stateless), POST /v1/assessments (submit and
persist) and the current-score, score-results and audit-history lookups.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel, Field

from readiness.api.dependencies import ScoringServiceDep, require_configuration
from readiness.api.errors import ReadinessHttpError

router = APIRouter(prefix="/v1", tags=["Scoring"], dependencies=[Depends(require_configuration)])


class SubmitAssessmentRequest(BaseModel):
    """Request body for POST /v1/assessments."""

    answers: Any = None
    user_id: str | None = Field(default=None, alias="userId")
    assessment_id: str | None = Field(default=None, alias="assessmentId")

    model_config = {"populate_by_name": True}


@router.post("/score")
def score_answers(
    service: ScoringServiceDep,
    payload: Any = Body(default=None),
    rule_set_version: str | None = Query(default=None, alias="ruleSetVersion"),
) -> dict[str, Any]:
    """Score answers without storing them.

    The body is the raw answers object, so validation failures surface as
    422 ANSWERS_INVALID rather than a generic request error.
    """
    result = service.score_answers(payload, rule_set_version)
    return result.to_public_payload()


@router.post("/assessments", status_code=201)
def submit_assessment(
    request_body: SubmitAssessmentRequest,
    service: ScoringServiceDep,
) -> dict[str, Any]:
    """Store an assessment and score it under the active RuleSet."""
    result = service.submit_assessment(
        request_body.answers,
        user_id=request_body.user_id,
        assessment_id=request_body.assessment_id,
    )
    return {
        "assessmentId": result.assessment_id,
        "scoreResultId": result.score_result_id,
        **result.to_public_payload(),
    }


@router.get("/assessments/{assessment_id}/score")
def get_current_score(assessment_id: str, service: ScoringServiceDep) -> dict[str, Any]:
    """Current score of an assessment.

    Raises:
        ReadinessHttpError: 404 if the assessment has no current score.
    """
    result = service.current_score(assessment_id)
    if result is None:
        raise ReadinessHttpError(
            status_code=404,
            code="ASSESSMENT_NOT_FOUND",
            message=f"No score for assessment {assessment_id}",
            details={"assessmentId": assessment_id},
        )
    return {
        "assessmentId": result.assessment_id,
        "scoreResultId": result.score_result_id,
        "computedAt": result.computed_at.isoformat(),
        **result.to_public_payload(),
    }


@router.get("/assessments/{assessment_id}/history")
def get_score_history(assessment_id: str, service: ScoringServiceDep) -> dict[str, Any]:
    """Audit entries for an assessment, oldest first."""
    entries = service.score_history(assessment_id)
    return {"assessmentId": assessment_id, "items": [entry.to_event() for entry in entries]}


@router.get("/assessments/{assessment_id}/scores")
def get_score_results(assessment_id: str, service: ScoringServiceDep) -> dict[str, Any]:
    """Every score computed for an assessment, superseded ones included, oldest first."""
    results = service.score_results(assessment_id)
    return {
        "assessmentId": assessment_id,
        "items": [
            {
                "scoreResultId": r.score_result_id,
                "status": r.status.value,
                "supersededBy": r.superseded_by,
                "computedBy": r.computed_by.value,
                "computedAt": r.computed_at.isoformat(),
                **r.to_public_payload(),
            }
            for r in results
        ],
    }
