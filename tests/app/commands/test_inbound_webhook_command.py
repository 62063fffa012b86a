"""Tests for ProcessInboundWebhookCommand."""

import uuid

import pytest

from app.commands.webhooks.inbound_webhook_command import ProcessInboundWebhookCommand
from app.core.exceptions import (
    AuthenticationError,
    MalformedPayloadError,
    MappingNotFoundError,
    PlatformNotEnabledError,
)
from app.core.notifier import ThreadNotifier
from app.core.registry import AdapterRegistry
from app.models.channel_mapping import ChannelMapping
from app.models.chat_message import ChatMessage
from app.schemas.relay import Platform
from tests.fixtures.platform_fixtures import groupme_callback, teams_activity


@pytest.fixture
def notifier():
    return ThreadNotifier()


@pytest.fixture
def command(db, registry, notifier):
    return ProcessInboundWebhookCommand(db, registry, notifier=notifier)


@pytest.mark.asyncio
async def test_duplicate_delivery_stores_one_message(
    db, command, groupme_mapping, default_thread, notifier
):
    queue = notifier.subscribe(default_thread.id)
    payload = groupme_callback(id="m-1", group_id="abc123", name="Bob", text="hello")

    first = await command.execute(Platform.GROUPME, groupme_mapping.id, payload, "s3cret")
    second = await command.execute(Platform.GROUPME, groupme_mapping.id, payload, "s3cret")

    assert first["status"] == "accepted"
    assert second == {"status": "duplicate"}
    messages = db.query(ChatMessage).all()
    assert len(messages) == 1
    assert messages[0].message == "hello"
    assert messages[0].external_sender_name == "Bob"
    assert messages[0].chat_thread_id == default_thread.id
    assert queue.qsize() == 1
    assert queue.get_nowait().id == messages[0].id


@pytest.mark.asyncio
async def test_accepted_message_refreshes_mapping(db, command, groupme_mapping):
    assert groupme_mapping.last_activity_at is None
    await command.execute(
        Platform.GROUPME, groupme_mapping.id, groupme_callback(), "s3cret"
    )
    db.refresh(groupme_mapping)
    assert groupme_mapping.last_activity_at is not None


@pytest.mark.asyncio
async def test_wrong_secret_is_rejected(db, command, groupme_mapping):
    with pytest.raises(AuthenticationError):
        await command.execute(
            Platform.GROUPME, groupme_mapping.id, groupme_callback(), "nope"
        )
    assert db.query(ChatMessage).count() == 0


@pytest.mark.asyncio
async def test_inactive_mapping_is_rejected(db, command, groupme_mapping):
    groupme_mapping.is_active = False
    db.commit()
    with pytest.raises(AuthenticationError):
        await command.execute(
            Platform.GROUPME, groupme_mapping.id, groupme_callback(), "s3cret"
        )
    assert db.query(ChatMessage).count() == 0


@pytest.mark.asyncio
async def test_payload_for_other_group_is_rejected(command, groupme_mapping):
    with pytest.raises(AuthenticationError):
        await command.execute(
            Platform.GROUPME,
            groupme_mapping.id,
            groupme_callback(group_id="someone-else"),
            "s3cret",
        )


@pytest.mark.asyncio
async def test_unknown_mapping(command):
    with pytest.raises(MappingNotFoundError):
        await command.execute(Platform.GROUPME, uuid.uuid4(), groupme_callback(), "x")


@pytest.mark.asyncio
async def test_platform_mismatch_is_not_found(command, groupme_mapping):
    with pytest.raises(MappingNotFoundError):
        await command.execute(
            Platform.TEAMS, groupme_mapping.id, teams_activity(), "s3cret"
        )


@pytest.mark.asyncio
async def test_malformed_payload(command, groupme_mapping):
    with pytest.raises(MalformedPayloadError):
        await command.execute(
            Platform.GROUPME, groupme_mapping.id, {"garbage": True}, "s3cret"
        )


@pytest.mark.asyncio
async def test_disabled_platform(db, groupme_mapping):
    command = ProcessInboundWebhookCommand(db, AdapterRegistry())
    with pytest.raises(PlatformNotEnabledError):
        await command.execute(
            Platform.GROUPME, groupme_mapping.id, groupme_callback(), "s3cret"
        )


@pytest.mark.asyncio
async def test_bot_messages_are_ignored(db, command, groupme_mapping):
    result = await command.execute(
        Platform.GROUPME,
        groupme_mapping.id,
        groupme_callback(sender_type="bot"),
        "s3cret",
    )
    assert result == {"status": "ignored"}
    assert db.query(ChatMessage).count() == 0


@pytest.mark.asyncio
async def test_event_level_mapping_uses_default_thread(
    db, command, make_mapping, default_thread, event_id
):
    mapping = make_mapping(
        platform="groupme",
        external_group_id="evt-group",
        event_id=event_id,
        webhook_secret="s3cret",
    )
    result = await command.execute(
        Platform.GROUPME, mapping.id, groupme_callback(group_id="evt-group"), "s3cret"
    )
    assert result["status"] == "accepted"
    assert db.query(ChatMessage).one().chat_thread_id == default_thread.id


@pytest.mark.asyncio
async def test_unmapped_conversation_is_parked(db, command):
    activity = teams_activity(
        conversation={"id": "conv-999", "name": "Night Shift", "tenantId": "t-1"},
        channelData={},
    )

    result = await command.execute_unmapped(Platform.TEAMS, activity)

    assert result == {"status": "parked"}
    mapping = db.query(ChannelMapping).one()
    assert mapping.platform == "teams"
    assert mapping.external_group_id == "conv-999"
    assert mapping.event_id is None
    assert mapping.chat_thread_id is None
    assert mapping.is_active
    assert mapping.has_conversation_reference
    assert mapping.installed_by_name == "Dana Scully"
    assert mapping.external_group_name == "Night Shift"
    assert db.query(ChatMessage).count() == 0


@pytest.mark.asyncio
async def test_unmapped_route_reuses_existing_mapping(db, command, make_mapping, default_thread, event_id):
    mapping = make_mapping(
        platform="teams",
        external_group_id="19:ops@thread.tacv2",
        event_id=event_id,
        chat_thread_id=default_thread.id,
    )
    result = await command.execute_unmapped(Platform.TEAMS, teams_activity())
    assert result["status"] == "accepted"
    assert db.query(ChannelMapping).count() == 1
    stored = db.query(ChatMessage).one()
    assert stored.external_channel_mapping_id == mapping.id
    assert stored.message == "status update"


@pytest.mark.asyncio
async def test_unmapped_route_ignores_inactive_mapping(db, command, make_mapping):
    make_mapping(
        platform="teams", external_group_id="19:ops@thread.tacv2", is_active=False
    )
    result = await command.execute_unmapped(Platform.TEAMS, teams_activity())
    assert result == {"status": "ignored"}
    assert db.query(ChannelMapping).count() == 1


@pytest.mark.asyncio
async def test_install_activity_refreshes_without_storing(db, command, make_mapping):
    mapping = make_mapping(
        platform="teams",
        external_group_id="19:ops@thread.tacv2",
        conversation_reference=None,
        installed_by_name=None,
    )
    result = await command.execute_unmapped(
        Platform.TEAMS, teams_activity(type="conversationUpdate", text=None)
    )
    assert result == {"status": "accepted"}
    db.refresh(mapping)
    assert mapping.has_conversation_reference
    assert mapping.installed_by_name == "Dana Scully"
    assert db.query(ChatMessage).count() == 0


@pytest.mark.asyncio
async def test_concurrent_first_contact_reuses_winning_mapping(
    db, command, make_mapping, default_thread, event_id, monkeypatch
):
    # Another callback parks the conversation between lookup and insert.
    winner = make_mapping(
        platform="teams",
        external_group_id="19:ops@thread.tacv2",
        event_id=event_id,
        chat_thread_id=default_thread.id,
    )
    monkeypatch.setattr(
        command.mapping_service, "get_mapping_by_group", lambda platform, gid: None
    )

    result = await command.execute_unmapped(Platform.TEAMS, teams_activity())

    assert result["status"] == "accepted"
    assert db.query(ChannelMapping).count() == 1
    assert db.query(ChatMessage).one().external_channel_mapping_id == winner.id


@pytest.mark.asyncio
async def test_non_install_activity_is_ignored(db, command, make_mapping):
    mapping = make_mapping(platform="teams", external_group_id="19:ops@thread.tacv2")
    result = await command.execute_unmapped(
        Platform.TEAMS, teams_activity(type="typing", id=None, text=None)
    )
    assert result == {"status": "ignored"}
    db.refresh(mapping)
    assert mapping.last_activity_at is None
    assert db.query(ChatMessage).count() == 0


@pytest.mark.asyncio
async def test_notifier_failure_does_not_fail_webhook(db, registry, groupme_mapping):
    class BrokenNotifier(ThreadNotifier):
        async def publish(self, thread_id, message):
            raise RuntimeError("transport down")

    command = ProcessInboundWebhookCommand(db, registry, notifier=BrokenNotifier())
    result = await command.execute(
        Platform.GROUPME, groupme_mapping.id, groupme_callback(), "s3cret"
    )
    assert result["status"] == "accepted"
    assert db.query(ChatMessage).count() == 1


