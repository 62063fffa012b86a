"""
Webhook routes for inbound platform callbacks.

Mapping-scoped callbacks authenticate with the mapping's webhook secret
(``token`` query parameter or ``X-Webhook-Secret`` header). The
platform-level route is used for bot installs and unmapped conversations
and requires the relay API key. Rejections carry generic details only.
"""

from __future__ import annotations

import logging
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from sqlalchemy.orm import Session

from app.commands.webhooks.inbound_webhook_command import ProcessInboundWebhookCommand
from app.core.exceptions import (
    AuthenticationError,
    MalformedPayloadError,
    MappingNotFoundError,
    PlatformNotEnabledError,
)
from app.core.notifier import ThreadNotifier
from app.core.registry import AdapterRegistry
from app.db import get_db
from app.routers.utils.dependencies import (
    get_adapter_registry,
    get_notifier,
    require_api_key,
)
from app.schemas.relay import Platform

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def _parse_platform(platform: str) -> Platform:
    try:
        return Platform(platform.lower())
    except ValueError as e:
        raise HTTPException(status_code=404, detail="Unknown platform") from e


async def _read_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as e:
        logger.warning("Webhook invalid JSON: %s", e)
        raise HTTPException(status_code=400, detail="Invalid JSON body") from e
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Body must be a JSON object")
    return body


@router.post("/{platform}/{mapping_id}")
async def mapping_webhook(
    platform: str,
    mapping_id: UUID,
    request: Request,
    token: Optional[str] = Query(None),
    x_webhook_secret: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    registry: AdapterRegistry = Depends(get_adapter_registry),
    notifier: ThreadNotifier = Depends(get_notifier),
) -> dict[str, str]:
    """Receive a callback for one mapping. 200 on accepted or duplicate delivery."""
    resolved = _parse_platform(platform)
    body = await _read_body(request)
    command = ProcessInboundWebhookCommand(db, registry, notifier=notifier)
    try:
        return await command.execute(
            resolved, mapping_id, body, secret=token or x_webhook_secret
        )
    except PlatformNotEnabledError as e:
        raise HTTPException(
            status_code=503, detail="Platform integration is not enabled"
        ) from e
    except MappingNotFoundError as e:
        raise HTTPException(status_code=404, detail="Not found") from e
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail="Unauthorized") from e
    except MalformedPayloadError as e:
        logger.warning("Webhook for mapping %s malformed: %s", mapping_id, e)
        raise HTTPException(status_code=400, detail="Malformed payload") from e


@router.post("/{platform}", dependencies=[Depends(require_api_key)])
async def platform_webhook(
    platform: str,
    request: Request,
    db: Session = Depends(get_db),
    registry: AdapterRegistry = Depends(get_adapter_registry),
    notifier: ThreadNotifier = Depends(get_notifier),
) -> dict[str, str]:
    """Receive a platform-level callback; unknown conversations are parked unlinked."""
    resolved = _parse_platform(platform)
    body = await _read_body(request)
    command = ProcessInboundWebhookCommand(db, registry, notifier=notifier)
    try:
        return await command.execute_unmapped(resolved, body)
    except PlatformNotEnabledError as e:
        raise HTTPException(
            status_code=503, detail="Platform integration is not enabled"
        ) from e
    except MalformedPayloadError as e:
        logger.warning("Platform webhook for %s malformed: %s", resolved.value, e)
        raise HTTPException(status_code=400, detail="Malformed payload") from e
