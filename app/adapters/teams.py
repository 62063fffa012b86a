"""
Microsoft Teams platform adapter (Bot Framework).

Inbound: Bot Framework activities. Every message carries enough addressing
data to rebuild the conversation reference, which the relay stores on the
mapping. Outbound: proactive messages posted to the reference's service URL,
so no prior inbound turn is needed.
"""

from __future__ import annotations

import re
import time
from datetime import datetime
from typing import Any, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from app.adapters.base import DEFAULT_TIMEOUT_SECONDS, BasePlatformAdapter
from app.core.exceptions import (
    DeliveryClassification,
    DeliveryError,
    MalformedPayloadError,
)
from app.schemas.relay import (
    InboundMessage,
    OutboundMessage,
    OutboundSendResult,
    Platform,
)
from app.schemas.teams import ConversationReference, TeamsActivity

EMULATOR_CHANNEL_ID = "emulator"
MENTION_PATTERN = re.compile(r"<at>.*?</at>", re.IGNORECASE | re.DOTALL)
TOKEN_REFRESH_MARGIN_SECONDS = 300
INSTALL_ACTIVITY_TYPES = ("conversationUpdate", "installationUpdate")


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class TeamsAdapter(BasePlatformAdapter):
    """Teams adapter: parse activities, continue conversations proactively."""

    platform = Platform.TEAMS

    def __init__(
        self,
        app_id: Optional[str] = None,
        app_password: Optional[str] = None,
        oauth_url: str = "https://login.microsoftonline.com/botframework.com/oauth2/v2.0/token",
        oauth_scope: str = "https://api.botframework.com/.default",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self._app_id = app_id
        self._app_password = app_password
        self._oauth_url = oauth_url
        self._oauth_scope = oauth_scope
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    def parse_webhook(self, raw_payload: dict[str, Any]) -> InboundMessage:
        """Parse a Bot Framework activity into a normalized inbound message."""
        try:
            activity = TeamsActivity.model_validate(raw_payload)
        except ValidationError as e:
            raise MalformedPayloadError(f"Invalid Teams activity: {e}") from e

        if activity.conversation is None or not activity.conversation.id:
            raise MalformedPayloadError("Teams activity has no conversation")
        if activity.type == "message" and not activity.id:
            raise MalformedPayloadError("Teams message activity has no id")

        channel_data = activity.channel_data or {}
        tenant_id = activity.conversation.tenant_id or (
            (channel_data.get("tenant") or {}).get("id")
        )
        group_name = (channel_data.get("channel") or {}).get(
            "name"
        ) or activity.conversation.name
        sender = activity.from_
        attachment_url = next(
            (a.content_url for a in activity.attachments if a.content_url), None
        )

        if activity.type == "message":
            kind = "message"
        elif activity.type in INSTALL_ACTIVITY_TYPES:
            kind = "install"
        else:
            kind = "system"

        return InboundMessage(
            platform=Platform.TEAMS,
            external_group_id=activity.conversation.id,
            message_id=activity.id or "",
            text=MENTION_PATTERN.sub("", activity.text or "").strip(),
            sender_id=sender.id if sender else None,
            sender_name=sender.name if sender else None,
            timestamp=_parse_timestamp(activity.timestamp),
            attachment_url=attachment_url,
            kind=kind,
            is_from_bot=bool(sender and sender.role == "bot"),
            conversation_reference=self.build_reference(activity),
            group_name=group_name,
            tenant_id=tenant_id,
            installed_by_name=sender.name if sender else None,
            is_emulator=activity.channel_id == EMULATOR_CHANNEL_ID,
        )

    @staticmethod
    def build_reference(activity: TeamsActivity) -> Optional[str]:
        """Serialize the addressing part of an activity. None without a service URL."""
        if not activity.service_url:
            return None
        reference = ConversationReference(
            activity_id=activity.id,
            user=activity.from_,
            bot=activity.recipient,
            conversation=activity.conversation,
            channel_id=activity.channel_id,
            locale=activity.locale,
            service_url=activity.service_url,
        )
        return reference.model_dump_json(by_alias=True, exclude_none=True)

    async def send(self, outbound: OutboundMessage) -> OutboundSendResult:
        """Post a message activity into the referenced conversation."""
        if not outbound.conversation_reference:
            raise DeliveryError(
                "Teams mapping has no conversation reference",
                platform=self.platform.value,
            )
        try:
            reference = ConversationReference.model_validate_json(
                outbound.conversation_reference
            )
        except ValidationError as e:
            raise DeliveryError(
                f"The conversation reference is not valid: {e}",
                platform=self.platform.value,
            ) from e
        if not reference.service_url or reference.conversation is None:
            raise DeliveryError(
                "The conversation reference is not valid: missing serviceUrl or conversation",
                platform=self.platform.value,
            )

        url = (
            f"{reference.service_url.rstrip('/')}/v3/conversations/"
            f"{quote(reference.conversation.id, safe='')}/activities"
        )
        activity: dict[str, Any] = {
            "type": "message",
            "text": outbound.text,
            "textFormat": "markdown",
            "conversation": {"id": reference.conversation.id},
        }
        if reference.bot is not None:
            activity["from"] = reference.bot.model_dump(by_alias=True, exclude_none=True)

        headers = {}
        token = await self._get_token(reference)
        if token:
            headers["Authorization"] = f"Bearer {token}"

        response = await self._request("POST", url, json=activity, headers=headers)
        message_id = None
        try:
            body = response.json()
            message_id = body.get("id") if isinstance(body, dict) else None
        except ValueError:
            pass
        return OutboundSendResult(success=True, platform_message_id=message_id)

    async def _get_token(self, reference: ConversationReference) -> Optional[str]:
        """
        Bot Framework access token, cached until shortly before expiry.

        Token failures are tagged as credential failures and carry no status
        code: a rejected app secret must not deactivate the conversations.
        """
        if not self._app_id or not self._app_password:
            if reference.channel_id == EMULATOR_CHANNEL_ID:
                return None
            raise self._credentials_error("Teams app credentials are not configured")
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        try:
            response = await self._request(
                "POST",
                self._oauth_url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self._app_id,
                    "client_secret": self._app_password,
                    "scope": self._oauth_scope,
                },
            )
        except DeliveryError as e:
            raise self._credentials_error(
                f"Bot Framework token request failed (HTTP {e.status_code})"
                if e.status_code is not None
                else "Bot Framework token request failed"
            ) from e
        try:
            body = response.json()
        except ValueError as e:
            raise self._credentials_error("Token endpoint returned invalid JSON") from e
        token = body.get("access_token")
        if not token:
            raise self._credentials_error("Token endpoint returned no access token")
        expires_in = int(body.get("expires_in", 3600))
        self._token = token
        self._token_expires_at = (
            time.monotonic() + max(expires_in - TOKEN_REFRESH_MARGIN_SECONDS, 0)
        )
        return token

    def _credentials_error(self, message: str) -> DeliveryError:
        return DeliveryError(
            message,
            platform=self.platform.value,
            classification=DeliveryClassification.CREDENTIALS,
        )
