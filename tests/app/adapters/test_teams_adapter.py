"""Tests for TeamsAdapter."""

import json
import uuid

import httpx
import pytest

from app.adapters.teams import TeamsAdapter
from app.core.exceptions import (
    DeliveryClassification,
    DeliveryError,
    MalformedPayloadError,
)
from app.core.reference_validator import ReferenceStatus, validate_reference
from app.schemas.relay import OutboundMessage, Platform
from tests.fixtures.platform_fixtures import teams_activity
from tests.fixtures.relay_fixtures import teams_reference


def outbound(reference, text="[Alice] hi"):
    return OutboundMessage(
        platform=Platform.TEAMS,
        mapping_id=uuid.uuid4(),
        external_group_id="19:ops@thread.tacv2",
        text=text,
        conversation_reference=reference,
    )


def test_parse_webhook(teams_adapter):
    inbound = teams_adapter.parse_webhook(teams_activity())
    assert inbound.platform == Platform.TEAMS
    assert inbound.external_group_id == "19:ops@thread.tacv2"
    assert inbound.message_id == "1700000000001"
    assert inbound.text == "status update"
    assert inbound.sender_name == "Dana Scully"
    assert inbound.tenant_id == "tenant-1"
    assert inbound.group_name == "Operations"
    assert inbound.installed_by_name == "Dana Scully"
    assert inbound.timestamp is not None
    assert not inbound.is_emulator
    assert validate_reference(inbound.conversation_reference).status == ReferenceStatus.VALID


def test_parse_webhook_tenant_from_channel_data(teams_adapter):
    activity = teams_activity(
        conversation={"id": "a:1on1"},
        channelData={"tenant": {"id": "tenant-2"}},
    )
    inbound = teams_adapter.parse_webhook(activity)
    assert inbound.tenant_id == "tenant-2"
    assert inbound.group_name is None


def test_parse_webhook_install_and_emulator(teams_adapter):
    inbound = teams_adapter.parse_webhook(
        teams_activity(type="conversationUpdate", id=None, channelId="emulator")
    )
    assert inbound.kind == "install"
    assert inbound.is_emulator


def test_parse_webhook_bot_message(teams_adapter):
    activity = teams_activity()
    activity["from"]["role"] = "bot"
    assert teams_adapter.parse_webhook(activity).is_from_bot


@pytest.mark.parametrize(
    "payload",
    [
        {"id": "1"},
        teams_activity(conversation=None),
        teams_activity(id=None),
    ],
)
def test_parse_webhook_malformed(teams_adapter, payload):
    with pytest.raises(MalformedPayloadError):
        teams_adapter.parse_webhook(payload)


@pytest.mark.asyncio
async def test_send_continues_conversation(teams_adapter, platform_requests):
    reference = teams_reference("19:ops@thread.tacv2")
    result = await teams_adapter.send(outbound(reference))

    assert result.platform_message_id == "activity-1"
    token_request, send_request = platform_requests
    assert token_request.url.path.endswith("/token")
    assert send_request.url.path == "/amer/v3/conversations/19:ops@thread.tacv2/activities"
    assert send_request.headers["Authorization"] == "Bearer bf-token"
    body = json.loads(send_request.content)
    assert body["type"] == "message"
    assert body["text"] == "[Alice] hi"
    assert body["from"]["id"] == "28:bot"


@pytest.mark.asyncio
async def test_token_is_cached(teams_adapter, platform_requests):
    reference = teams_reference("19:ops@thread.tacv2")
    await teams_adapter.send(outbound(reference))
    await teams_adapter.send(outbound(reference))
    token_calls = [r for r in platform_requests if r.url.path.endswith("/token")]
    assert len(token_calls) == 1


@pytest.mark.asyncio
async def test_send_emulator_without_credentials(http_client, platform_requests):
    adapter = TeamsAdapter(client=http_client)
    reference = json.loads(teams_reference("conv-1", "http://localhost:3978/"))
    reference["channelId"] = "emulator"
    await adapter.send(outbound(json.dumps(reference)))
    assert len(platform_requests) == 1
    assert "Authorization" not in platform_requests[0].headers


@pytest.mark.asyncio
async def test_send_without_credentials_fails(http_client):
    adapter = TeamsAdapter(client=http_client)
    with pytest.raises(DeliveryError, match="credentials"):
        await adapter.send(outbound(teams_reference("conv-1")))


@pytest.mark.asyncio
async def test_send_invalid_reference(teams_adapter):
    with pytest.raises(DeliveryError, match="not valid"):
        await teams_adapter.send(outbound(json.dumps({"channelId": "msteams"})))


@pytest.mark.asyncio
async def test_send_forbidden_carries_status():
    def handler(request):
        if request.url.path.endswith("/token"):
            return httpx.Response(200, json={"access_token": "t", "expires_in": 3600})
        return httpx.Response(403, json={"error": {"code": "BotNotInConversationRoster"}})

    adapter = TeamsAdapter(
        app_id="a",
        app_password="p",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    with pytest.raises(DeliveryError) as exc_info:
        await adapter.send(outbound(teams_reference("conv-1")))
    assert exc_info.value.status_code == 403


@pytest.mark.asyncio
async def test_token_rejection_is_a_credentials_failure():
    def handler(request):
        if request.url.path.endswith("/token"):
            return httpx.Response(403, text="Forbidden")
        return httpx.Response(201, json={"id": "activity-1"})

    adapter = TeamsAdapter(
        app_id="a",
        app_password="wrong",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    with pytest.raises(DeliveryError) as exc_info:
        await adapter.send(outbound(teams_reference("conv-1")))
    assert exc_info.value.status_code is None
    assert exc_info.value.classification == DeliveryClassification.CREDENTIALS
    assert "HTTP 403" in str(exc_info.value)


@pytest.mark.parametrize(
    "activity_type,kind",
    [
        ("conversationUpdate", "install"),
        ("installationUpdate", "install"),
        ("typing", "system"),
        ("messageReaction", "system"),
        ("endOfConversation", "system"),
    ],
)
def test_parse_webhook_activity_kinds(teams_adapter, activity_type, kind):
    inbound = teams_adapter.parse_webhook(teams_activity(type=activity_type, id=None))
    assert inbound.kind == kind
