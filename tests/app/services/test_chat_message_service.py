"""Tests for ChatMessageService."""

import uuid

import pytest

from app.core.exceptions import ConflictError
from app.models.chat_message import ChatMessage
from app.schemas.relay import InboundMessage, Platform
from app.services.chat_message_service import ChatMessageService


@pytest.fixture
def inbound():
    return InboundMessage(
        platform=Platform.GROUPME,
        external_group_id="abc123",
        message_id="m-1",
        text="hello",
        sender_id="u-9",
        sender_name="Bob",
    )


def test_create_external_message(db, groupme_mapping, default_thread, inbound):
    message, created = ChatMessageService(db).create_external_message(
        default_thread.id, groupme_mapping, inbound
    )
    assert created
    assert message.is_external_message
    assert message.external_source == "groupme"
    assert message.external_sender_name == "Bob"
    assert message.created_by == "Bob (via Groupme)"
    assert message.external_channel_mapping_id == groupme_mapping.id
    assert message.external_timestamp is not None


def test_create_external_message_is_idempotent(db, groupme_mapping, default_thread, inbound):
    service = ChatMessageService(db)
    first, _ = service.create_external_message(default_thread.id, groupme_mapping, inbound)
    second, created = service.create_external_message(
        default_thread.id, groupme_mapping, inbound
    )
    assert not created
    assert second.id == first.id
    assert db.query(ChatMessage).count() == 1


def test_same_external_id_in_other_thread_is_stored(
    db, groupme_mapping, default_thread, make_thread, event_id, inbound
):
    other = make_thread(event_id)
    service = ChatMessageService(db)
    service.create_external_message(default_thread.id, groupme_mapping, inbound)
    _, created = service.create_external_message(other.id, groupme_mapping, inbound)
    assert created


def test_native_messages_never_collide(db, default_thread):
    service = ChatMessageService(db)
    service.create_native_message(default_thread.id, "one", "Alice")
    service.create_native_message(default_thread.id, "two", "Alice")
    messages = service.get_messages(default_thread.id)
    assert [m.message for m in messages] == ["one", "two"]
    assert not messages[0].is_external_message


def test_promote_message(db, default_thread):
    service = ChatMessageService(db)
    message = service.create_native_message(default_thread.id, "Road closed", "Alice")
    logbook_id = uuid.uuid4()

    promoted = service.promote_message(message.id, logbook_id, "Alice")
    assert promoted.promoted_to_logbook_id == logbook_id
    assert promoted.promoted_at is not None

    again = service.promote_message(message.id, logbook_id, "Bob")
    assert again.promoted_by == "Alice"

    with pytest.raises(ConflictError):
        service.promote_message(message.id, uuid.uuid4(), "Bob")

    assert service.promote_message(uuid.uuid4(), logbook_id, "Bob") is None


def test_lost_insert_race_returns_existing(
    db, groupme_mapping, default_thread, inbound, monkeypatch
):
    """The unique constraint catches a concurrent insert the pre-check missed."""
    service = ChatMessageService(db)
    first, _ = service.create_external_message(default_thread.id, groupme_mapping, inbound)

    lookup = service.get_external_message
    calls = []

    def stale_lookup(external_message_id, thread_id):
        calls.append(external_message_id)
        if len(calls) == 1:
            return None
        return lookup(external_message_id, thread_id)

    monkeypatch.setattr(service, "get_external_message", stale_lookup)
    second, created = service.create_external_message(
        default_thread.id, groupme_mapping, inbound
    )

    assert not created
    assert second.id == first.id
    assert db.query(ChatMessage).count() == 1
