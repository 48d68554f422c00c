"""RuleSet routes for the readiness API.

Versions are append-only: publishing an existing version is a 409 and a
revert republishes old weights under a new version.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel, Field

from readiness.api.dependencies import RuleSetStoreDep, require_configuration
from readiness.api.errors import ReadinessHttpError
from readiness.errors import ConfigurationError
from readiness.models.rule_set import RuleSet
from readiness.rulesets.document import parse_rule_set_document

router = APIRouter(prefix="/v1", tags=["RuleSets"], dependencies=[Depends(require_configuration)])


class RevertRequest(BaseModel):
    """Request body for POST /v1/rulesets/{version}/revert."""

    new_version: str = Field(..., alias="newVersion")
    reason: str = Field(..., min_length=1)
    created_by: str | None = Field(default=None, alias="createdBy")

    model_config = {"populate_by_name": True}


def rule_set_payload(rule_set: RuleSet, active_version: str | None) -> dict[str, Any]:
    """Response shape for one RuleSet (weights as decimal strings)."""
    return {
        "version": rule_set.version,
        "active": rule_set.version == active_version,
        "dimensionWeights": rule_set.dimension_weights.model_dump(mode="json"),
        "sectorOverrides": {
            bucket.value: weights.model_dump(mode="json")
            for bucket, weights in sorted(rule_set.sector_overrides.items())
        },
        "contentHash": rule_set.content_hash,
        "createdAt": rule_set.created_at.isoformat(),
        "createdBy": rule_set.created_by,
        "changeReason": rule_set.change_reason,
    }


@router.get("/rulesets")
def list_rule_sets(store: RuleSetStoreDep) -> dict[str, Any]:
    """All published versions in SemVer order."""
    active = store.active_version()
    return {
        "activeVersion": active,
        "items": [rule_set_payload(rs, active) for rs in store.list_versions()],
    }


@router.get("/rulesets/{version}")
def get_rule_set(version: str, store: RuleSetStoreDep) -> dict[str, Any]:
    return rule_set_payload(store.get_or_raise(version), store.active_version())


@router.post("/rulesets", status_code=201)
def publish_rule_set(
    store: RuleSetStoreDep,
    document: Any = Body(default=None),
    activate: bool = Query(default=True),
) -> dict[str, Any]:
    """Publish a RuleSet document, activating it unless ?activate=false.

    Raises:
        ReadinessHttpError: 422 RULESET_INVALID if the document is malformed.
    """
    try:
        rule_set = parse_rule_set_document(document)
    except ConfigurationError as e:
        raise ReadinessHttpError(
            status_code=422,
            code="RULESET_INVALID",
            message=str(e),
        ) from e
    published = store.publish(rule_set, activate=activate)
    return rule_set_payload(published, store.active_version())


@router.post("/rulesets/{version}/revert", status_code=201)
def revert_rule_set(
    version: str, request_body: RevertRequest, store: RuleSetStoreDep
) -> dict[str, Any]:
    """Republish `version`'s weights as a new, active version."""
    reverted = store.revert_to(
        version,
        request_body.new_version,
        request_body.reason,
        created_by=request_body.created_by,
    )
    return rule_set_payload(reverted, store.active_version())
