"""Notification sinks: where birthday announcements are delivered.

Every sink exposes ``async send(group_id, text) -> bool``. Sinks log and
return False on failure instead of raising, so one bad group never stops a
dispatch run.
"""

import asyncio
from typing import Optional

import httpx
from twilio.rest import Client as TwilioClient

from logger import logger
from . import config
from .errors import ConfigurationError


class DiscordChannelSink:
    """Posts to a Discord channel; the group id is the channel id."""

    def __init__(self, bot):
        self.bot = bot

    async def send(self, group_id: str, text: str) -> bool:
        try:
            channel_id = int(group_id)
        except (TypeError, ValueError):
            logger.error(f"Discord sink: group id {group_id!r} is not a channel id")
            return False

        try:
            channel = self.bot.get_channel(channel_id)
            if not channel:
                channel = await self.bot.fetch_channel(channel_id)

            if not channel:
                logger.error(f"Could not find channel {channel_id}")
                return False

            await channel.send(text)
            return True
        except Exception as e:
            logger.error(f"Failed to post birthday message to channel {channel_id}: {e}")
            return False


class DiscordWebhookSink:
    """Posts through per-group Discord webhooks."""

    def __init__(self, webhook_urls: Optional[dict[str, str]] = None, timeout: Optional[float] = None):
        self.webhook_urls = config.WEBHOOK_URLS if webhook_urls is None else webhook_urls
        self.timeout = timeout or config.WEBHOOK_TIMEOUT

    async def send(self, group_id: str, text: str) -> bool:
        url = self.webhook_urls.get(group_id)
        if not url:
            logger.error(f"No webhook configured for group {group_id}")
            return False

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    url,
                    json={"content": text},
                    timeout=self.timeout
                )
                response.raise_for_status()
            return True
        except httpx.HTTPStatusError as e:
            logger.error(f"Webhook for group {group_id} rejected message: HTTP {e.response.status_code}")
            return False
        except Exception as e:
            logger.error(f"Webhook delivery to group {group_id} failed: {e}")
            return False


class WhatsAppSink:
    """Sends WhatsApp messages via Twilio to each recipient mapped to a group."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        recipients: Optional[dict[str, list[str]]] = None
    ):
        self.from_number = from_number
        self.recipients = config.WHATSAPP_RECIPIENTS if recipients is None else recipients
        self._client = TwilioClient(account_sid, auth_token)

    async def send(self, group_id: str, text: str) -> bool:
        numbers = self.recipients.get(group_id, [])
        if not numbers:
            logger.error(f"No WhatsApp recipients configured for group {group_id}")
            return False

        # Convert Discord bold (**text**) to WhatsApp bold (*text*)
        whatsapp_message = text.replace("**", "*")

        def send_to_recipients():
            """Sync function to send WhatsApp messages."""
            results = []
            for recipient in numbers:
                try:
                    self._client.messages.create(
                        body=whatsapp_message,
                        from_=f"whatsapp:{self.from_number}",
                        to=f"whatsapp:{recipient}"
                    )
                    results.append((recipient, True, None))
                except Exception as e:
                    results.append((recipient, False, str(e)))
            return results

        # Run sync Twilio client in thread to avoid blocking event loop
        results = await asyncio.to_thread(send_to_recipients)

        for recipient, success, error in results:
            if success:
                logger.debug(f"Sent WhatsApp to {recipient}")
            else:
                logger.error(f"WhatsApp send failed to {recipient}: {error}")

        return all(success for _, success, _ in results)


def create_sink(backend: Optional[str] = None, bot=None):
    """Build the configured notification sink.

    Args:
        backend: "discord", "webhook" or "whatsapp" (default from config)
        bot: Discord bot instance, required for the "discord" backend

    Raises:
        ConfigurationError: If the backend is unknown or missing its settings
    """
    from config import TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_WHATSAPP_FROM

    backend = (backend or config.NOTIFY_BACKEND).lower()

    if backend == "discord":
        if bot is None:
            raise ConfigurationError("Discord sink needs a bot instance")
        return DiscordChannelSink(bot)

    if backend == "webhook":
        if not config.WEBHOOK_URLS:
            raise ConfigurationError("NOTIFY_BACKEND=webhook but BIRTHDAY_WEBHOOKS is empty")
        return DiscordWebhookSink()

    if backend == "whatsapp":
        if not all([TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_WHATSAPP_FROM]):
            raise ConfigurationError("NOTIFY_BACKEND=whatsapp but Twilio is not configured")
        return WhatsAppSink(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_WHATSAPP_FROM)

    raise ConfigurationError(f"Unknown NOTIFY_BACKEND {backend!r}")
