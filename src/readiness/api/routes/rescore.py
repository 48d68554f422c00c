"""Re-score route for the readiness API.

POST /v1/rescore runs a job to completion and returns its summary. Item
failures do not fail the request; they are listed in the summary.
"""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from readiness.api.dependencies import RescoreManagerDep, require_configuration
from readiness.models.rescore import AssessmentSelector

router = APIRouter(prefix="/v1", tags=["Rescore"], dependencies=[Depends(require_configuration)])


class SelectorBody(BaseModel):
    """Population filter; every given criterion must match."""

    assessment_ids: list[str] | None = Field(default=None, alias="assessmentIds")
    user_id: str | None = Field(default=None, alias="userId")
    rule_set_version: str | None = Field(default=None, alias="ruleSetVersion")
    rule_set_version_below: str | None = Field(default=None, alias="ruleSetVersionBelow")

    model_config = {"populate_by_name": True, "extra": "forbid"}

    def to_selector(self) -> AssessmentSelector:
        return AssessmentSelector(
            assessment_ids=self.assessment_ids,
            user_id=self.user_id,
            rule_set_version=self.rule_set_version,
            rule_set_version_below=self.rule_set_version_below,
        )


class RescoreRequest(BaseModel):
    """Request body for POST /v1/rescore."""

    selector: SelectorBody = Field(default_factory=SelectorBody)
    target_rule_set_version: str = Field(..., alias="targetRuleSetVersion")
    reason: str = Field(..., min_length=1)
    triggered_by: str = Field(default="api", alias="triggeredBy")

    model_config = {"populate_by_name": True}


@router.post("/rescore")
def run_rescore(request_body: RescoreRequest, manager: RescoreManagerDep) -> dict[str, Any]:
    """Run a re-score job and return its summary."""
    result = manager.rescore(
        request_body.selector.to_selector(),
        request_body.target_rule_set_version,
        request_body.reason,
        request_body.triggered_by,
    )
    return result.model_dump(mode="json")
