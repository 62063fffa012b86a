"""
GroupMe platform adapter.

GroupMe addresses outbound posts by bot id (one bot per group); inbound
messages arrive as bot callbacks. Group and bot provisioning use the
user access token.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from app.adapters.base import DEFAULT_TIMEOUT_SECONDS, BasePlatformAdapter
from app.core.exceptions import DeliveryError, MalformedPayloadError
from app.schemas.groupme import GroupMeCallback
from app.schemas.relay import (
    InboundMessage,
    OutboundMessage,
    OutboundSendResult,
    Platform,
)

MAX_MESSAGE_LENGTH = 1000
IMAGE_PLACEHOLDER = "[Image]"


def _chunks(text: str, size: int = MAX_MESSAGE_LENGTH) -> list[str]:
    if len(text) <= size:
        return [text]
    return [text[i : i + size] for i in range(0, len(text), size)]


class GroupMeAdapter(BasePlatformAdapter):
    """GroupMe adapter: parse bot callbacks, post via the Bots API."""

    platform = Platform.GROUPME

    def __init__(
        self,
        api_url: str,
        access_token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self.api_url = api_url.rstrip("/")
        self._access_token = access_token

    def build_reference(self, group_id: str, bot_id: str) -> str:
        """Reference stored on the mapping so the shared validator can check it."""
        return json.dumps(
            {
                "serviceUrl": self.api_url,
                "channelId": "groupme",
                "conversation": {"id": group_id},
                "bot": {"id": bot_id},
            }
        )

    def parse_webhook(self, raw_payload: dict[str, Any]) -> InboundMessage:
        """Parse a GroupMe bot callback into a normalized inbound message."""
        try:
            callback = GroupMeCallback.model_validate(raw_payload)
        except ValidationError as e:
            raise MalformedPayloadError(f"Invalid GroupMe callback: {e}") from e

        image_url = next(
            (a.url for a in callback.attachments if a.type == "image" and a.url),
            None,
        )
        timestamp = None
        if callback.created_at is not None:
            timestamp = datetime.fromtimestamp(callback.created_at, tz=timezone.utc)

        if callback.sender_type == "system" or callback.system:
            kind = "system"
        else:
            kind = "message"

        return InboundMessage(
            platform=Platform.GROUPME,
            external_group_id=callback.group_id,
            message_id=callback.id,
            text=callback.text or (IMAGE_PLACEHOLDER if image_url else ""),
            sender_id=callback.user_id or callback.sender_id,
            sender_name=callback.name,
            timestamp=timestamp,
            attachment_url=image_url,
            kind=kind,
            is_from_bot=callback.sender_type == "bot",
        )

    async def send(self, outbound: OutboundMessage) -> OutboundSendResult:
        """Post as the group's bot. GroupMe returns no message id for bot posts."""
        bot_id = outbound.bot_id or self._bot_id_from_reference(
            outbound.conversation_reference
        )
        if not bot_id:
            raise DeliveryError(
                "GroupMe mapping has no bot id", platform=self.platform.value
            )
        for chunk in _chunks(outbound.text):
            await self._request(
                "POST",
                f"{self.api_url}/bots/post",
                json={"bot_id": bot_id, "text": chunk},
            )
        return OutboundSendResult(success=True, platform_message_id=None)

    async def create_group(self, name: str) -> tuple[str, Optional[str]]:
        """Create a shareable group. Returns (group_id, share_url)."""
        response = await self._request(
            "POST",
            f"{self.api_url}/groups",
            params=self._token_params(),
            json={"name": name, "share": True},
        )
        group = self._unwrap(response)
        return str(group["id"]), group.get("share_url")

    async def create_bot(self, group_id: str, name: str, callback_url: str) -> str:
        """Register a bot in the group posting callbacks to ``callback_url``."""
        response = await self._request(
            "POST",
            f"{self.api_url}/bots",
            params=self._token_params(),
            json={
                "bot": {
                    "name": name,
                    "group_id": group_id,
                    "callback_url": callback_url,
                }
            },
        )
        bot = self._unwrap(response).get("bot") or {}
        bot_id = bot.get("bot_id")
        if not bot_id:
            raise DeliveryError(
                "GroupMe did not return a bot id", platform=self.platform.value
            )
        return str(bot_id)

    async def destroy_bot(self, bot_id: str) -> None:
        await self._request(
            "POST",
            f"{self.api_url}/bots/destroy",
            params=self._token_params(),
            json={"bot_id": bot_id},
        )

    def _token_params(self) -> dict[str, str]:
        if not self._access_token:
            raise DeliveryError(
                "GroupMe access token is not configured", platform=self.platform.value
            )
        return {"token": self._access_token}

    def _unwrap(self, response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            raise DeliveryError(
                "GroupMe returned invalid JSON", platform=self.platform.value
            ) from e
        data = body.get("response") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise DeliveryError(
                "GroupMe response has no payload", platform=self.platform.value
            )
        return data

    @staticmethod
    def _bot_id_from_reference(reference: Optional[str]) -> Optional[str]:
        if not reference:
            return None
        try:
            data = json.loads(reference)
        except ValueError:
            return None
        bot = data.get("bot") if isinstance(data, dict) else None
        return bot.get("id") if isinstance(bot, dict) else None
