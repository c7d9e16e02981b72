"""Webhook command handlers."""

from app.commands.webhooks.meta_command import MetaWebhookCommand

__all__ = ["MetaWebhookCommand"]
