"""Tests for the readiness HTTP API."""

from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

from readiness.api.main import create_app
from readiness.audit.trail import InMemoryAuditTrail
from readiness.api.middleware.request_id import REQUEST_ID_HEADER
from readiness.config import ENV_APP_ENV
from readiness.errors import PersistenceError
from readiness.persistence.repositories.assessments import InMemoryAssessmentsRepository
from readiness.persistence.repositories.scores import InMemoryScoresRepository
from readiness.rulesets.store import InMemoryRuleSetStore
from readiness.scoring.engine import ScoringEngine
from readiness.services.rescore.manager import RescoreManager
from readiness.services.scoring import ScoringService
from tests.fixtures.builders import answers_payload, reweighted_rule_set

REWEIGHTED_DOCUMENT: dict[str, Any] = {
    "version": "0.2.0",
    "dimensions": {"market": 5, "moat": 5, "financials": 40, "team": 25, "traction": 25},
    "changeReason": "Weight financials higher",
    "createdBy": "methodology-team",
}


@pytest.fixture
def client(
    scoring_service: ScoringService,
    rescore_manager: RescoreManager,
    rule_set_store: InMemoryRuleSetStore,
) -> TestClient:
    app = create_app(
        scoring_service=scoring_service,
        rescore_manager=rescore_manager,
        rule_set_store=rule_set_store,
    )
    return TestClient(app, raise_server_exceptions=False)


class UnreachableRuleSetStore(InMemoryRuleSetStore):
    """Rule set store whose active pointer cannot be read."""

    def active_version(self) -> str | None:
        raise PersistenceError("get_active_rule_set", "connection refused")


def _assert_envelope(response: Any, status: int, code: str) -> dict[str, Any]:
    assert response.status_code == status
    body = response.json()
    assert body["code"] == code
    assert body["message"]
    assert body["request_id"] == response.headers[REQUEST_ID_HEADER]
    return body


class TestHealth:
    """GET /health needs no configuration."""

    def test_health_ok(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["version"] == "0.1.0"
        assert response.headers[REQUEST_ID_HEADER]

    def test_request_id_is_echoed(self, client: TestClient) -> None:
        response = client.get("/health", headers={REQUEST_ID_HEADER: "req-123"})

        assert response.headers[REQUEST_ID_HEADER] == "req-123"

    def test_unsafe_request_id_is_replaced(self, client: TestClient) -> None:
        response = client.get("/health", headers={REQUEST_ID_HEADER: "bad id; drop table"})

        assigned = response.headers[REQUEST_ID_HEADER]
        assert assigned != "bad id; drop table"
        assert len(assigned) == 36

    def test_health_without_configuration(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv(ENV_APP_ENV)

        assert client.get("/health").status_code == 200


class TestScore:
    """POST /v1/score."""

    def test_example_answers(self, client: TestClient) -> None:
        response = client.post("/v1/score", json=answers_payload())

        assert response.status_code == 200
        body = response.json()
        assert body["totalScore"] == 58
        assert body["businessIdea"] == 80
        assert body["financials"] == 15
        assert body["team"] == 95
        assert body["traction"] == 30
        assert body["bucket"] == "B2C Consumer"
        assert body["ruleSetVersion"] == "0.1.0"
        assert body["tractionExplanation"].startswith("Market traction scored 30/100.")

    def test_explicit_version(
        self, client: TestClient, rule_set_store: InMemoryRuleSetStore
    ) -> None:
        client.post("/v1/rulesets", params={"activate": "false"}, json=REWEIGHTED_DOCUMENT)

        response = client.post(
            "/v1/score", params={"ruleSetVersion": "0.2.0"}, json=answers_payload()
        )

        assert response.json()["totalScore"] == 45
        assert rule_set_store.active_version() == "0.1.0"

    def test_invalid_answers(self, client: TestClient) -> None:
        payload = answers_payload(mrrBand="lots")
        del payload["stage"]

        response = client.post("/v1/score", json=payload)

        body = _assert_envelope(response, 422, "ANSWERS_INVALID")
        fields = {e["field"] for e in body["details"]["errors"]}
        assert {"stage", "mrrBand"} <= fields

    def test_non_object_body(self, client: TestClient) -> None:
        response = client.post("/v1/score", json=[1, 2, 3])

        _assert_envelope(response, 422, "ANSWERS_INVALID")

    def test_unknown_version(self, client: TestClient) -> None:
        response = client.post(
            "/v1/score", params={"ruleSetVersion": "9.9.9"}, json=answers_payload()
        )

        body = _assert_envelope(response, 404, "RULESET_NOT_FOUND")
        assert body["details"] == {"version": "9.9.9"}

    def test_malformed_version(self, client: TestClient) -> None:
        response = client.post(
            "/v1/score", params={"ruleSetVersion": "latest"}, json=answers_payload()
        )

        _assert_envelope(response, 400, "RULESET_VERSION_INVALID")

    def test_no_active_rule_set(
        self,
        assessments: InMemoryAssessmentsRepository,
        scores: InMemoryScoresRepository,
        audit: InMemoryAuditTrail,
    ) -> None:
        empty = InMemoryRuleSetStore()
        service = ScoringService(ScoringEngine(empty), assessments, scores, audit)
        client = TestClient(
            create_app(scoring_service=service, rule_set_store=empty),
            raise_server_exceptions=False,
        )

        response = client.post("/v1/score", json=answers_payload())

        body = _assert_envelope(response, 500, "CONFIGURATION_MISSING")
        assert body["details"] == {"missing": ["active_rule_set"]}

    def test_unreadable_rule_set_store(
        self,
        assessments: InMemoryAssessmentsRepository,
        scores: InMemoryScoresRepository,
        audit: InMemoryAuditTrail,
    ) -> None:
        store = UnreachableRuleSetStore()
        service = ScoringService(ScoringEngine(store), assessments, scores, audit)
        client = TestClient(
            create_app(scoring_service=service, rule_set_store=store),
            raise_server_exceptions=False,
        )

        response = client.post("/v1/score", json=answers_payload())

        body = _assert_envelope(response, 500, "CONFIGURATION_MISSING")
        assert body["details"] == {"missing": ["rule_set_store"]}
        assert "connection refused" not in body["message"]

    def test_missing_environment(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv(ENV_APP_ENV)

        response = client.post("/v1/score", json=answers_payload())

        body = _assert_envelope(response, 500, "CONFIGURATION_MISSING")
        assert body["details"] == {"missing": [ENV_APP_ENV]}


class TestAssessments:
    """Submitting assessments and reading their scores."""

    def test_submit_then_read(self, client: TestClient) -> None:
        created = client.post(
            "/v1/assessments", json={"answers": answers_payload(), "userId": "u-1"}
        )

        assert created.status_code == 201
        body = created.json()
        assert body["totalScore"] == 58
        assessment_id = body["assessmentId"]

        current = client.get(f"/v1/assessments/{assessment_id}/score")
        assert current.status_code == 200
        assert current.json()["scoreResultId"] == body["scoreResultId"]
        assert current.json()["computedAt"]

        history = client.get(f"/v1/assessments/{assessment_id}/history").json()
        (entry,) = history["items"]
        assert entry["new_score_result_id"] == body["scoreResultId"]
        assert entry["previous_score_result_id"] is None
        assert entry["triggered_by"] == "u-1"

    def test_client_supplied_id(self, client: TestClient) -> None:
        payload = {"answers": answers_payload(), "assessmentId": "a-1"}

        first = client.post("/v1/assessments", json=payload)
        second = client.post("/v1/assessments", json=payload)

        assert first.json()["assessmentId"] == "a-1"
        _assert_envelope(second, 409, "ASSESSMENT_EXISTS")

    def test_invalid_answers_are_not_stored(
        self, client: TestClient, assessments: InMemoryAssessmentsRepository
    ) -> None:
        response = client.post(
            "/v1/assessments", json={"answers": {"hasPrototype": True}, "assessmentId": "a-2"}
        )

        _assert_envelope(response, 422, "ANSWERS_INVALID")
        assert assessments.get("a-2") is None

    def test_unknown_assessment(self, client: TestClient) -> None:
        response = client.get("/v1/assessments/nope/score")

        body = _assert_envelope(response, 404, "ASSESSMENT_NOT_FOUND")
        assert body["details"] == {"assessmentId": "nope"}

    def test_score_results_include_superseded(
        self, client: TestClient, rule_set_store: InMemoryRuleSetStore
    ) -> None:
        created = client.post("/v1/assessments", json={"answers": answers_payload()}).json()
        assessment_id = created["assessmentId"]
        rule_set_store.publish(reweighted_rule_set(), activate=False)
        client.post(
            "/v1/rescore",
            json={
                "targetRuleSetVersion": "0.2.0",
                "reason": "reweight",
                "triggeredBy": "analyst",
                "selector": {"assessmentIds": [assessment_id]},
            },
        )

        response = client.get(f"/v1/assessments/{assessment_id}/scores")

        assert response.status_code == 200
        first, second = response.json()["items"]
        assert first["scoreResultId"] == created["scoreResultId"]
        assert first["status"] == "superseded"
        assert first["supersededBy"] == second["scoreResultId"]
        assert first["ruleSetVersion"] == "0.1.0"
        assert second["status"] == "current"
        assert second["computedBy"] == "rescore_job"
        assert second["totalScore"] == 45

    def test_history_of_unknown_assessment_is_empty(self, client: TestClient) -> None:
        response = client.get("/v1/assessments/nope/history")

        assert response.status_code == 200
        assert response.json() == {"assessmentId": "nope", "items": []}


class TestRuleSets:
    """Listing, publishing and reverting rule sets."""

    def test_list(self, client: TestClient) -> None:
        body = client.get("/v1/rulesets").json()

        assert body["activeVersion"] == "0.1.0"
        (item,) = body["items"]
        assert item["version"] == "0.1.0"
        assert item["active"] is True
        assert item["contentHash"]

    def test_show_unknown(self, client: TestClient) -> None:
        _assert_envelope(client.get("/v1/rulesets/3.0.0"), 404, "RULESET_NOT_FOUND")

    def test_publish_activates(self, client: TestClient) -> None:
        response = client.post("/v1/rulesets", json=REWEIGHTED_DOCUMENT)

        assert response.status_code == 201
        body = response.json()
        assert body["version"] == "0.2.0"
        assert body["active"] is True
        assert body["createdBy"] == "methodology-team"
        assert client.post("/v1/score", json=answers_payload()).json()["totalScore"] == 45

    def test_publish_inactive(self, client: TestClient) -> None:
        response = client.post(
            "/v1/rulesets", params={"activate": "false"}, json=REWEIGHTED_DOCUMENT
        )

        assert response.json()["active"] is False
        assert client.get("/v1/rulesets").json()["activeVersion"] == "0.1.0"

    def test_publish_duplicate(self, client: TestClient) -> None:
        client.post("/v1/rulesets", json=REWEIGHTED_DOCUMENT)

        response = client.post("/v1/rulesets", json=REWEIGHTED_DOCUMENT)

        _assert_envelope(response, 409, "RULESET_VERSION_EXISTS")

    def test_publish_invalid_document(self, client: TestClient) -> None:
        document = {**REWEIGHTED_DOCUMENT, "dimensions": {"market": 50}}

        response = client.post("/v1/rulesets", json=document)

        _assert_envelope(response, 422, "RULESET_INVALID")

    def test_revert(self, client: TestClient) -> None:
        client.post("/v1/rulesets", json=REWEIGHTED_DOCUMENT)

        response = client.post(
            "/v1/rulesets/0.1.0/revert",
            json={"newVersion": "0.3.0", "reason": "financials weighting rolled back"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["version"] == "0.3.0"
        assert body["active"] is True
        original = client.get("/v1/rulesets/0.1.0").json()
        assert body["dimensionWeights"] == original["dimensionWeights"]
        assert client.post("/v1/score", json=answers_payload()).json()["totalScore"] == 58


class TestRescore:
    """POST /v1/rescore runs a job synchronously."""

    def test_rescore_population(self, client: TestClient) -> None:
        ids = [
            client.post("/v1/assessments", json={"answers": answers_payload()}).json()[
                "assessmentId"
            ]
            for _ in range(3)
        ]
        client.post("/v1/rulesets", params={"activate": "false"}, json=REWEIGHTED_DOCUMENT)

        response = client.post(
            "/v1/rescore",
            json={
                "selector": {"ruleSetVersion": "0.1.0"},
                "targetRuleSetVersion": "0.2.0",
                "reason": "reweight financials",
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["succeeded"] == 3
        assert body["failed"] == []
        assert body["triggered_by"] == "api"
        for assessment_id in ids:
            current = client.get(f"/v1/assessments/{assessment_id}/score").json()
            assert current["ruleSetVersion"] == "0.2.0"
            assert current["totalScore"] == 45

    def test_unknown_target(self, client: TestClient) -> None:
        response = client.post(
            "/v1/rescore", json={"targetRuleSetVersion": "9.9.9", "reason": "typo"}
        )

        _assert_envelope(response, 404, "RULESET_NOT_FOUND")

    def test_missing_reason(self, client: TestClient) -> None:
        response = client.post("/v1/rescore", json={"targetRuleSetVersion": "0.1.0"})

        _assert_envelope(response, 422, "REQUEST_VALIDATION_FAILED")

    def test_unknown_selector_field(self, client: TestClient) -> None:
        response = client.post(
            "/v1/rescore",
            json={
                "selector": {"sector": "FinTech"},
                "targetRuleSetVersion": "0.1.0",
                "reason": "x",
            },
        )

        _assert_envelope(response, 422, "REQUEST_VALIDATION_FAILED")
