"""
HTTP contract checks for the matching and queue routes.

Shape-focused: status codes, the success envelope and key response fields.
Scoring behaviour is covered by the service-level tests.
"""

import pytest

pytest.importorskip("fastapi")
from fastapi.testclient import TestClient

import matchqueue.main as m
from matchqueue.deps import get_matching_service
from matchqueue.errors import InfrastructureError
from matchqueue.schemas import UpdateDatingPreferencesRequest, UpdatePreferencesRequest
from matchqueue.services import rate_limit
from matchqueue.services.validation import BASE_PREFERENCE_FIELDS, DATING_PREFERENCE_FIELDS


@pytest.fixture
def client(monkeypatch, service):
    rate_limit.limiter.reset()
    monkeypatch.setattr(m, "wait_for_db", lambda *args, **kwargs: None)
    monkeypatch.setattr(m, "run_migrations", lambda *args, **kwargs: None)
    m.app.dependency_overrides[get_matching_service] = lambda: service
    yield TestClient(m.app)
    m.app.dependency_overrides.clear()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_get_preferences_defaults_envelope(client):
    res = client.get("/matching/preferences/u1")
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "success"
    assert body["data"]["userId"] == "u1"
    assert body["data"]["minAge"] == 18
    assert body["data"]["ageWeight"] == 0.3


def test_put_preferences_accepts_camel_case(client):
    res = client.put("/matching/preferences/u1", json={"maxRadius": 15, "preferredInterests": ["film"]})
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["maxRadius"] == 15.0
    assert data["preferredInterests"] == ["film"]


def test_put_preferences_validation_error(client):
    res = client.put("/matching/preferences/u1", json={"minAge": 50, "maxAge": 20})
    assert res.status_code == 400
    assert res.json()["reason"] == "age_range_inverted"


def test_put_dating_preferences(client):
    res = client.put(
        "/matching/dating-preferences/u1",
        json={"preferredGenders": ["woman"], "preferredMinAge": 25, "preferredMaxAge": 35},
    )
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["preferredGenders"] == ["WOMAN"]
    assert (data["preferredMinAge"], data["preferredMaxAge"]) == (25, 35)


def test_find_matches_contract(client, add_waiting):
    add_waiting("cand", age=30)
    res = client.post("/matching/find-dating-matches", json={"userId": "seeker", "intent": "CASUAL", "maxMatches": 5})
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["algorithm"] == "dating_v1"
    assert data["matches"][0]["candidateId"] == "cand"
    assert set(data["matches"][0]) == {"candidateId", "matchAttemptId", "totalScorePct", "breakdownPct"}


def test_find_matches_rejects_out_of_range(client):
    res = client.post("/matching/find-dating-matches", json={"userId": "seeker", "maxMatches": 500})
    assert res.status_code == 400
    assert res.json()["reason"] == "max_matches_out_of_range"


def test_find_matches_store_failure_is_503(client, monkeypatch, service):
    def boom(*args, **kwargs):
        raise InfrastructureError("queue.list_waiting", "seeker")

    monkeypatch.setattr(service.ranker.selector, "select_entries", boom)
    res = client.post("/matching/find-dating-matches", json={"userId": "seeker"})
    assert res.status_code == 503
    assert res.headers["Retry-After"] == "1"
    assert res.json()["operation"] == "queue.list_waiting"


def test_find_matches_rate_limited(client, monkeypatch):
    monkeypatch.setattr(rate_limit.limiter, "check", lambda key, limit, window_seconds: rate_limit.RateDecision(False, 7))
    res = client.post("/matching/find-dating-matches", json={"userId": "seeker"})
    assert res.status_code == 429
    assert res.headers["Retry-After"] == "7"


def test_history_and_stats(client, add_waiting):
    add_waiting("cand")
    client.post("/matching/find-dating-matches", json={"userId": "seeker"})

    history = client.get("/matching/history/seeker", params={"limit": 5}).json()["data"]
    assert history["pagination"] == {"limit": 5, "offset": 0, "total": 1}
    assert history["matches"][0]["user2Id"] == "cand"

    stats = client.get("/matching/stats").json()["data"]
    assert stats["totalMatches"] == 1

    assert client.get("/matching/history/seeker", params={"offset": -1}).status_code == 400


def test_queue_join_status_leave(client):
    res = client.post(
        "/queue/join",
        json={"userId": "u1", "intent": "SERIOUS", "profile": {"age": 33, "educationLevel": "POSTGRADUATE"}},
    )
    assert res.status_code == 200
    assert res.json()["data"]["intent"] == "SERIOUS"

    status = client.get("/queue/status/u1").json()["data"]
    assert status["inQueue"] is True
    assert status["position"] == 1

    stats = client.get("/queue/stats").json()["data"]
    assert stats["byIntent"] == {"SERIOUS": 1}

    assert client.post("/queue/leave", json={"userId": "u1"}).json()["data"] == {"left": True}
    assert client.get("/queue/status/u1").json()["data"]["inQueue"] is False


def test_queue_join_rejects_bad_intent_and_extra_fields(client):
    res = client.post("/queue/join", json={"userId": "u1", "intent": "ROMANCE"})
    assert res.status_code == 400
    assert res.json()["reason"] == "invalid_intent"

    assert client.post("/queue/join", json={"userId": "u1", "intent": "CASUAL", "vip": True}).status_code == 422


def test_put_preferences_rejects_unknown_keys(client):
    assert client.put("/matching/preferences/u1", json={"maxRadius": 10, "favouriteColour": "red"}).status_code == 422
    assert client.put("/matching/preferences/u1", json={"preferredGenders": ["MAN"]}).status_code == 422
    assert client.put("/matching/dating-preferences/u1", json={"minAge": 30}).status_code == 422
    assert client.get("/matching/preferences/u1").json()["data"]["maxRadius"] == 50.0


def test_preference_bodies_cover_each_field_group():
    assert set(UpdatePreferencesRequest.model_fields) == BASE_PREFERENCE_FIELDS
    assert set(UpdateDatingPreferencesRequest.model_fields) == DATING_PREFERENCE_FIELDS
    assert UpdatePreferencesRequest(minAge=30).changes() == {"min_age": 30}
    assert UpdateDatingPreferencesRequest(premiumExpiry=None).changes() == {"premium_expiry": None}


def test_routes_package_exports_only_the_mount_helper():
    import matchqueue.routes as routes

    assert routes.__all__ == ["include_modular_routers"]
    assert not hasattr(routes, "APIRouter")
