from unittest.mock import patch

import pytest

from tripdraw.main import create_app

from conftest import TODAY, make_pool


@pytest.fixture
def engine(make_engine):
    return make_engine(make_pool({"food": 10, "scenery": 10, "shopping": 10}))


@pytest.fixture
def client(engine):
    app = create_app(engine=engine)
    app.config["TESTING"] = True
    return app.test_client()


def _auth(uid="user-1"):
    return patch("user_auth.utils.verify_firebase_token", return_value={"uid": uid, "email": f"{uid}@example.com"})


def test_authenticated_draw(client, draw_store):
    with _auth():
        resp = client.post("/draw/itinerary", json={"city": "Taipei", "count": 5},
                           headers={"Authorization": "Bearer token"})
    body = resp.get_json()
    assert resp.status_code == 200
    assert body["success"] is True
    assert len(body["items"]) == 5
    assert body["meta"]["remainingQuota"] == 31
    assert draw_store.counts[("user-1", TODAY)] == 5


def test_guest_draw_uses_session_header(client, engine):
    resp = client.post("/draw/itinerary", json={"city": "Taipei", "count": 5},
                       headers={"X-Guest-Session": "abc123"})
    assert resp.status_code == 200
    assert resp.get_json()["meta"]["remainingQuota"] is None
    assert len(engine.ledger.guest_store.get("guest:abc123:Taipei")) == 5


def test_invalid_token_is_401(client):
    with patch("user_auth.utils.verify_firebase_token", return_value=None):
        resp = client.post("/draw/itinerary", json={"city": "Taipei"}, headers={"Authorization": "Bearer bad"})
    assert resp.status_code == 401
    assert resp.get_json()["code"] == "UNAUTHORIZED"


def test_malformed_auth_header_is_401(client):
    resp = client.post("/draw/itinerary", json={"city": "Taipei"}, headers={"Authorization": "Token x"})
    assert resp.status_code == 401


@pytest.mark.parametrize("payload,status,code", [
    ({}, 400, "CITY_REQUIRED"),
    ({"city": "Taipei", "count": 20}, 400, "INVALID_PARAMS"),
    ({"city": "Nowhere"}, 404, "NO_PLACES_AVAILABLE"),
    ({"regionId": 99}, 400, "REGION_NOT_FOUND"),
])
def test_rejections_map_to_status(client, payload, status, code):
    resp = client.post("/draw/itinerary", json=payload)
    body = resp.get_json()
    assert resp.status_code == status
    assert body["success"] is False
    assert body["code"] == code


def test_quota_rejections(client, draw_store):
    draw_store.counts[("user-1", TODAY)] = 34
    with _auth():
        resp = client.post("/draw/itinerary", json={"city": "Taipei", "count": 5},
                           headers={"Authorization": "Bearer token"})
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "EXCEEDS_REMAINING_QUOTA"
    assert resp.get_json()["remainingQuota"] == 2

    draw_store.counts[("user-1", TODAY)] = 36
    with _auth():
        resp = client.post("/draw/itinerary", json={"city": "Taipei", "count": 5},
                           headers={"Authorization": "Bearer token"})
    assert resp.status_code == 429
    assert resp.get_json()["code"] == "DAILY_LIMIT_EXCEEDED"


def test_unexpected_error_is_500(client, draw_store):
    draw_store.fail_increment = True
    with _auth():
        resp = client.post("/draw/itinerary", json={"city": "Taipei", "count": 5},
                           headers={"Authorization": "Bearer token"})
    assert resp.status_code == 500
    assert resp.get_json() == {
        "success": False,
        "error": "The draw service is temporarily unavailable, please try again later.",
        "code": "INTERNAL_ERROR",
    }


def test_non_object_body_is_rejected(client):
    resp = client.post("/draw/itinerary", json=[1, 2])
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "INVALID_PARAMS"


def test_quota_endpoint(client, engine, draw_store):
    engine.quota.today = lambda: TODAY
    draw_store.counts[("user-1", TODAY)] = 12
    with _auth():
        resp = client.get("/draw/quota", headers={"Authorization": "Bearer token"})
    assert resp.get_json() == {
        "success": True, "dailyLimit": 36, "dailyDrawCount": 12, "remainingQuota": 24, "exempt": False,
    }

    guest = client.get("/draw/quota").get_json()
    assert guest["exempt"] is True
    assert guest["remainingQuota"] is None
