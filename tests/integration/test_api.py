"""End-to-end API tests against the mock provider."""

from __future__ import annotations

import time

import pytest
from fastapi.testclient import TestClient

from suggestion_engine.api.app import create_app
from suggestion_engine.providers.mock_provider import MockProvider
from suggestion_engine.providers.pacing import RequestPacer
from suggestion_engine.services import ServiceContainer

ROLES = ["supports", "contradicts", "method", "background", "other"]


def working_set_payload(count: int = 6) -> dict:
    return {
        "subject": {"id": "s1", "title": "Sleep and memory consolidation", "description": "Does sleep help recall?"},
        "items": [
            {
                "id": f"p{i}",
                "title": f"Study {i} on sleep and memory",
                "authors": [f"Author {i}"],
                "year": 2015 + i,
                "abstract": f"Abstract for study {i}.",
                "summary": f"Study {i} reports an effect of sleep on recall.",
                "role": ROLES[(i - 1) % len(ROLES)],
                "claims": [{"claim": f"Claim {i}", "strength": "moderate"}],
            }
            for i in range(1, count + 1)
        ],
        "relationships": [],
    }


@pytest.fixture
def client(settings):
    services = ServiceContainer.create(
        settings,
        provider_factory=lambda s: MockProvider(s, pacer=RequestPacer(base_interval_s=0.0)),
    )
    with TestClient(create_app(services)) as test_client:
        yield test_client


def suggest_relationships(client, count=6, item_id="p1"):
    return client.post(
        "/suggestions/relationships",
        json={"working_set": working_set_payload(count), "item_id": item_id},
    )


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["provider"] == "mock"
    assert body["configured"] is True
    assert body["queue_running"] is True


def test_request_id_is_echoed(client):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"
    assert "X-Duration-MS" in response.headers


def test_policy_for_cold_start(client):
    body = client.get("/policy", params={"item_count": 2}).json()
    assert body["tier"] == "cold-start"
    assert body["features"]["relationship_suggestions"] is False
    assert body["cold_start_message"] == "Add 1 more item to unlock AI-powered relationship suggestions."


def test_policy_for_large_collection(client):
    body = client.get("/policy", params={"item_count": 80}).json()
    assert body["tier"] == "large"
    assert body["auto_trigger"] is False
    assert body["cold_start_message"] is None


def test_relationship_suggestions(client):
    response = suggest_relationships(client)
    assert response.status_code == 200
    suggestions = response.json()["suggestions"]
    assert len(suggestions) == 2
    for suggestion in suggestions:
        assert suggestion["kind"] == "relationship"
        assert suggestion["target_item_id"] == "p1"
        assert suggestion["suggested_item_id"] in {f"p{i}" for i in range(2, 7)}
        assert suggestion["confidence"] >= 0.6


def test_cold_start_returns_feature_disabled(client):
    response = suggest_relationships(client, count=2)
    assert response.status_code == 403
    body = response.json()
    assert body["code"] == "FEATURE_DISABLED"
    assert body["family"] == "configuration"
    assert body["retryable"] is False


def test_unknown_item_returns_invalid_input(client):
    response = suggest_relationships(client, item_id="missing")
    assert response.status_code == 422
    assert response.json()["code"] == "INVALID_INPUT"


def test_accept_relationship_flow(client):
    [first, _] = suggest_relationships(client).json()["suggestions"]

    response = client.post(f"/suggestions/{first['id']}/accept-relationship", json={"subject_id": "s1"})
    assert response.status_code == 200
    relationship = response.json()
    assert relationship["from_item_id"] == "p1"
    assert relationship["to_item_id"] == first["suggested_item_id"]
    assert relationship["ai_suggested"] is True

    feedback = client.get("/feedback").json()
    assert [(r["suggestion_id"], r["action"]) for r in feedback] == [(first["id"], "accepted")]
    assert client.get("/feedback/summary").json()["relationship"]["acceptance_rate"] == 1.0

    again = client.post(f"/suggestions/{first['id']}/dismiss", json={})
    assert again.status_code == 422


def test_dismiss_claim(client):
    payload = {"working_set": working_set_payload(), "item_id": "p2"}
    [claim] = client.post("/suggestions/claims", json=payload).json()["suggestions"]
    response = client.post(f"/suggestions/{claim['id']}/dismiss", json={})
    assert response.status_code == 200
    assert response.json()["action"] == "dismissed"
    assert response.json()["family"] == "claim"


def test_summary_and_gaps(client):
    summary = client.post(
        "/suggestions/summary", json={"working_set": working_set_payload(), "item_id": "p1"}
    ).json()["suggestion"]
    assert summary["item_id"] == "p1"

    gaps = client.post("/suggestions/gaps", json={"working_set": working_set_payload()}).json()["suggestions"]
    assert gaps and all(set(g["related_item_ids"]) <= {f"p{i}" for i in range(1, 7)} for g in gaps)


def test_plan_based_gaps_disabled_by_default(client):
    response = client.post("/suggestions/gaps/plan-based", json={"working_set": working_set_payload()})
    assert response.status_code == 403


def test_screening_and_intake(client):
    screening = client.post(
        "/suggestions/screening",
        json={
            "working_set": working_set_payload(),
            "candidates": [{"id": "c1", "title": "Candidate one"}, {"id": "c2", "title": "Candidate two"}],
        },
    ).json()
    assert [r["item_id"] for r in screening["results"]] == ["c1", "c2"]

    intake = client.post(
        "/suggestions/intake",
        json={"working_set": working_set_payload(), "item": {"id": "new", "title": "New paradigm"}},
    ).json()
    assert intake["item_id"] == "new"
    assert intake["role"] == "background"


def test_settings_patch_applies_to_later_requests(client):
    response = client.patch("/settings", json={"confidence_threshold": 0.8})
    assert response.status_code == 200
    assert response.json()["confidence_threshold"] == 0.8
    assert response.json()["provider_replaced"] is False
    assert client.get("/settings").json()["confidence_threshold"] == 0.8

    assert suggest_relationships(client).json()["suggestions"] == []


def test_disabling_feature_via_settings(client):
    client.patch("/settings", json={"enable_relationship_suggestions": False})
    assert suggest_relationships(client).status_code == 403


def test_settings_never_echo_api_key(client):
    body = client.patch("/settings", json={"api_key": "sk-secret"}).json()
    assert body["has_api_key"] is True
    assert "sk-secret" not in str(body)


def test_connection_check(client):
    body = client.post("/settings/test-connection").json()
    assert body == {"ok": True, "provider": "mock"}


def test_queue_processes_enqueued_job(client):
    response = client.post("/queue/jobs", json={"working_set": working_set_payload(), "item_id": "p1"})
    assert response.status_code == 200
    job_id = response.json()["job_id"]
    assert response.json()["accepted"] is True

    for _ in range(200):
        job = client.get(f"/queue/jobs/{job_id}").json()
        if job["status"] == "completed":
            break
        time.sleep(0.01)
    assert job["status"] == "completed"
    assert job["suggestion_count"] == 2

    suggestions = client.get("/queue/items/p1/suggestions").json()["suggestions"]
    assert len(suggestions) == 2
    assert client.get("/queue/status").json()["completed"] == 1


def test_queue_rejects_cold_start(client):
    response = client.post("/queue/jobs", json={"working_set": working_set_payload(2), "item_id": "p1"})
    assert response.json() == {"job_id": None, "accepted": False}


def test_queue_unknown_job(client):
    assert client.get("/queue/jobs/nope").status_code == 404
    assert client.delete("/queue/jobs/nope").status_code == 409
    assert client.delete("/queue/jobs").json() == {"removed": 0}


def test_invalid_settings_are_rejected(client):
    response = client.patch("/settings", json={"base_url": "ftp://example.com"})
    assert response.status_code == 422
    assert "base_url" in response.json()["detail"]
    assert client.get("/settings").json()["base_url"] == ""


def test_rerank_relationship_candidates(client):
    candidates = suggest_relationships(client).json()["suggestions"]
    response = client.post(
        "/suggestions/relationships/rerank",
        json={"working_set": working_set_payload(), "candidates": candidates, "max_results": 1},
    )
    assert response.status_code == 200
    [top] = response.json()["results"]
    assert top["suggestion"]["id"] == candidates[1]["id"]
    assert top["original_confidence"] == 0.75
    assert top["adjusted_confidence"] == 0.65
    assert top["rank_change"] == 1


def test_rerank_rejects_candidates_outside_working_set(client):
    candidates = suggest_relationships(client).json()["suggestions"]
    candidates[0]["suggested_item_id"] = "ghost"
    response = client.post(
        "/suggestions/relationships/rerank",
        json={"working_set": working_set_payload(), "candidates": candidates},
    )
    assert response.status_code == 422
    assert response.json()["code"] == "INVALID_INPUT"


def test_intake_edits_show_up_in_learned_preferences(client):
    for n in range(3):
        intake = client.post(
            "/suggestions/intake",
            json={"working_set": working_set_payload(), "item": {"id": f"new-{n}", "title": f"New item {n}"}},
        ).json()
        response = client.post(
            f"/suggestions/{intake['id']}/accept", json={"edited": {"role": "method"}, "subject_id": "s1"}
        )
        assert response.json()["family"] == "intake"

    preferences = client.get("/feedback/preferences", params={"subject_id": "s1"}).json()
    assert preferences["total_feedback"] == 3
    assert preferences["role_biases"] == {"background": -0.2}
    assert preferences["role_transitions"][0]["frequency"] == 3
    assert "[User preference - role assignment]" in preferences["prompt_context"]["intake"]
    assert preferences["prompt_context"]["relationship"] == ""

    intake = client.post(
        "/suggestions/intake",
        json={"working_set": working_set_payload(), "item": {"id": "new-3", "title": "New item 3"}},
    ).json()
    assert intake["alternative_role"] == "method"
