"""Webhook command handlers."""

from app.commands.webhooks.inbound_webhook_command import ProcessInboundWebhookCommand

__all__ = ["ProcessInboundWebhookCommand"]
