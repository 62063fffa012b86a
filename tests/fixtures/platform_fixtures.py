"""Fixtures for platform adapters and the adapter registry."""

from typing import Any, Dict, List

import httpx
import pytest

from app.adapters.base import BasePlatformAdapter
from app.adapters.groupme import GroupMeAdapter
from app.adapters.teams import TeamsAdapter
from app.core.registry import AdapterRegistry
from app.schemas.relay import (
    InboundMessage,
    OutboundMessage,
    OutboundSendResult,
    Platform,
)


class FakeAdapter(BasePlatformAdapter):
    """In-memory adapter; ``failures`` maps external group ids to exceptions."""

    def __init__(self, platform: Platform, inner: BasePlatformAdapter = None) -> None:
        super().__init__()
        self.platform = platform
        self._inner = inner
        self.sent: List[OutboundMessage] = []
        self.failures: Dict[str, Exception] = {}

    def parse_webhook(self, raw_payload: dict[str, Any]) -> InboundMessage:
        return self._inner.parse_webhook(raw_payload)

    async def send(self, outbound: OutboundMessage) -> OutboundSendResult:
        failure = self.failures.get(outbound.external_group_id)
        if failure is not None:
            raise failure
        self.sent.append(outbound)
        return OutboundSendResult(
            success=True, platform_message_id=f"msg-{len(self.sent)}"
        )


@pytest.fixture
def platform_requests():
    return []


@pytest.fixture
def http_client(platform_requests):
    """AsyncClient whose transport records requests and answers like the platforms."""

    def handler(request: httpx.Request) -> httpx.Response:
        platform_requests.append(request)
        if request.url.path.endswith("/token"):
            return httpx.Response(200, json={"access_token": "bf-token", "expires_in": 3600})
        if request.url.path.endswith("/activities"):
            return httpx.Response(201, json={"id": "activity-1"})
        if request.url.path.endswith("/bots/post"):
            return httpx.Response(202)
        return httpx.Response(200, json={"response": {}})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def groupme_adapter(http_client):
    return GroupMeAdapter(
        api_url="https://api.groupme.com/v3",
        access_token="gm-token",
        client=http_client,
    )


@pytest.fixture
def teams_adapter(http_client):
    return TeamsAdapter(app_id="app-id", app_password="app-secret", client=http_client)


@pytest.fixture
def fake_groupme(groupme_adapter):
    return FakeAdapter(Platform.GROUPME, inner=groupme_adapter)


@pytest.fixture
def fake_teams(teams_adapter):
    return FakeAdapter(Platform.TEAMS, inner=teams_adapter)


@pytest.fixture
def registry(fake_groupme, fake_teams):
    registry = AdapterRegistry()
    registry.register(fake_groupme)
    registry.register(fake_teams)
    return registry


def groupme_callback(**overrides):
    """GroupMe bot callback for group abc123."""
    payload = {
        "id": "m-1",
        "group_id": "abc123",
        "name": "Bob",
        "text": "hello",
        "created_at": 1700000000,
        "sender_type": "user",
        "sender_id": "u-9",
        "user_id": "u-9",
        "attachments": [],
    }
    payload.update(overrides)
    return payload


def teams_activity(**overrides):
    """Bot Framework message activity from a Teams channel."""
    activity = {
        "type": "message",
        "id": "1700000000001",
        "timestamp": "2024-05-01T12:00:00.000Z",
        "serviceUrl": "https://smba.trafficmanager.net/amer/",
        "channelId": "msteams",
        "from": {"id": "29:user", "name": "Dana Scully", "aadObjectId": "aad-1"},
        "recipient": {"id": "28:bot", "name": "COBRA"},
        "conversation": {
            "id": "19:ops@thread.tacv2",
            "name": "Ops",
            "tenantId": "tenant-1",
            "conversationType": "channel",
        },
        "text": "<at>COBRA</at> status update",
        "channelData": {"channel": {"name": "Operations"}},
    }
    activity.update(overrides)
    return activity
