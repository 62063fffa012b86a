"""Tests for webhook routes."""

import uuid

from fastapi.testclient import TestClient

from app.models.chat_message import ChatMessage
from tests.fixtures.platform_fixtures import groupme_callback, teams_activity


def test_groupme_webhook_accepted(client: TestClient, db, groupme_mapping):
    resp = client.post(
        f"/webhooks/groupme/{groupme_mapping.id}?token=s3cret",
        json=groupme_callback(),
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "accepted"
    assert db.query(ChatMessage).count() == 1


def test_secret_header_is_accepted(client: TestClient, groupme_mapping):
    resp = client.post(
        f"/webhooks/groupme/{groupme_mapping.id}",
        json=groupme_callback(),
        headers={"X-Webhook-Secret": "s3cret"},
    )
    assert resp.status_code == 200


def test_duplicate_delivery_returns_200(client: TestClient, db, groupme_mapping):
    url = f"/webhooks/groupme/{groupme_mapping.id}?token=s3cret"
    client.post(url, json=groupme_callback())
    resp = client.post(url, json=groupme_callback())
    assert resp.status_code == 200
    assert resp.json() == {"status": "duplicate"}
    assert db.query(ChatMessage).count() == 1


def test_wrong_secret_is_401(client: TestClient, db, groupme_mapping):
    resp = client.post(
        f"/webhooks/groupme/{groupme_mapping.id}?token=wrong",
        json=groupme_callback(),
    )
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Unauthorized"
    assert db.query(ChatMessage).count() == 0


def test_missing_secret_is_401(client: TestClient, groupme_mapping):
    resp = client.post(
        f"/webhooks/groupme/{groupme_mapping.id}", json=groupme_callback()
    )
    assert resp.status_code == 401


def test_unknown_mapping_is_404(client: TestClient):
    resp = client.post(
        f"/webhooks/groupme/{uuid.uuid4()}?token=s3cret", json=groupme_callback()
    )
    assert resp.status_code == 404


def test_unknown_platform_is_404(client: TestClient, groupme_mapping):
    resp = client.post(
        f"/webhooks/myspace/{groupme_mapping.id}?token=s3cret", json={}
    )
    assert resp.status_code == 404


def test_invalid_json_is_400(client: TestClient, groupme_mapping):
    resp = client.post(
        f"/webhooks/groupme/{groupme_mapping.id}?token=s3cret",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert resp.status_code == 400


def test_malformed_payload_is_400(client: TestClient, groupme_mapping):
    resp = client.post(
        f"/webhooks/groupme/{groupme_mapping.id}?token=s3cret",
        json={"unexpected": "shape"},
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Malformed payload"


def test_platform_webhook_parks_unknown_conversation(client: TestClient):
    resp = client.post(
        "/webhooks/teams",
        json=teams_activity(conversation={"id": "conv-999", "tenantId": "t-1"}),
    )
    assert resp.status_code == 200
    assert resp.json() == {"status": "parked"}


def test_platform_webhook_requires_api_key(client: TestClient, monkeypatch):
    monkeypatch.setenv("RELAY_API_KEY", "relay-key")
    resp = client.post("/webhooks/teams", json=teams_activity())
    assert resp.status_code == 401

    resp = client.post(
        "/webhooks/teams", json=teams_activity(), headers={"X-API-Key": "relay-key"}
    )
    assert resp.status_code == 200
