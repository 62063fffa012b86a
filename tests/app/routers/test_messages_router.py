"""Tests for messaging API."""

import uuid

from fastapi.testclient import TestClient

from app.models.chat_message import ChatMessage
from app.services.chat_message_service import ChatMessageService


def test_send_message_to_event(
    client: TestClient, db, default_thread, make_mapping, event_id, fake_teams
):
    make_mapping(event_id=event_id)
    broken = make_mapping(event_id=event_id, conversation_reference="not json")

    resp = client.post(
        f"/events/{event_id}/messages",
        json={"message": "Shelter open", "sender_name": "Alice"},
    )

    assert resp.status_code == 201
    body = resp.json()
    assert body["message"]["chat_thread_id"] == str(default_thread.id)
    assert body["message"]["is_external_message"] is False
    statuses = {o["mapping_id"]: o["status"] for o in body["outcomes"]}
    assert statuses[str(broken.id)] == "skipped-invalid-reference"
    assert list(statuses.values()).count("sent") == 1
    assert fake_teams.sent[0].text == "[Alice] Shelter open"
    assert db.query(ChatMessage).count() == 1


def test_send_message_to_thread(
    client: TestClient, make_mapping, make_thread, event_id, fake_teams
):
    thread = make_thread(event_id, name="Logistics")
    linked = make_mapping(event_id=event_id, chat_thread_id=thread.id)
    make_mapping(event_id=event_id)

    resp = client.post(
        f"/events/{event_id}/messages",
        json={
            "message": "trucks inbound",
            "sender_name": "Alice",
            "chat_thread_id": str(thread.id),
        },
    )

    assert resp.status_code == 201
    assert [o["mapping_id"] for o in resp.json()["outcomes"]] == [str(linked.id)]
    assert len(fake_teams.sent) == 1


def test_send_message_thread_from_other_event_is_404(
    client: TestClient, make_thread, event_id
):
    thread = make_thread(uuid.uuid4())
    resp = client.post(
        f"/events/{event_id}/messages",
        json={"message": "hi", "sender_name": "Alice", "chat_thread_id": str(thread.id)},
    )
    assert resp.status_code == 404


def test_send_message_without_default_thread_is_404(client: TestClient, event_id):
    resp = client.post(
        f"/events/{event_id}/messages", json={"message": "hi", "sender_name": "Alice"}
    )
    assert resp.status_code == 404


def test_announcement(client: TestClient, make_mapping, event_id, fake_groupme):
    make_mapping(event_id=event_id)
    make_mapping(platform="groupme", event_id=event_id, bot_id="bot-1")

    resp = client.post(
        f"/events/{event_id}/announcements",
        json={
            "title": "Curfew",
            "message": "Curfew at 2200",
            "sender_name": "Dispatch",
            "priority": "high",
        },
    )

    assert resp.status_code == 200
    assert resp.json()["channels_reached"] == 2
    assert fake_groupme.sent[0].text.startswith("[HIGH PRIORITY ANNOUNCEMENT] Curfew")


def test_list_thread_messages(client: TestClient, db, default_thread):
    service = ChatMessageService(db)
    service.create_native_message(default_thread.id, "first", "Alice")
    service.create_native_message(default_thread.id, "second", "Bob")

    resp = client.get(f"/chat-threads/{default_thread.id}/messages")

    assert resp.status_code == 200
    assert [m["message"] for m in resp.json()] == ["first", "second"]
    assert client.get(f"/chat-threads/{uuid.uuid4()}/messages").status_code == 404


def test_promote_message(client: TestClient, db, default_thread):
    message = ChatMessageService(db).create_native_message(
        default_thread.id, "Road closed", "Alice"
    )
    logbook_id = str(uuid.uuid4())

    resp = client.post(
        f"/chat-messages/{message.id}/promote",
        json={"logbook_entry_id": logbook_id, "promoted_by": "Alice"},
    )
    assert resp.status_code == 200
    assert resp.json()["promoted_to_logbook_id"] == logbook_id

    resp = client.post(
        f"/chat-messages/{message.id}/promote",
        json={"logbook_entry_id": str(uuid.uuid4()), "promoted_by": "Bob"},
    )
    assert resp.status_code == 409

    resp = client.post(
        f"/chat-messages/{uuid.uuid4()}/promote",
        json={"logbook_entry_id": logbook_id, "promoted_by": "Alice"},
    )
    assert resp.status_code == 404
