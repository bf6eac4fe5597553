"""Birthday domain configuration - scheduling, retention and delivery."""

import os

from config import DATA_DIR

# Timezone used for every "what day is it" decision
TIMEZONE = os.environ.get("BIRTHDAY_TIMEZONE", "Africa/Lagos")

# SQLite database holding members, groups, birthdays and reminders
BIRTHDAY_DB = os.environ.get("BIRTHDAY_DB", str(DATA_DIR / "birthdays.db"))

# Reminders are materialized this many days before the birthday
REMINDER_LEAD_DAYS = int(os.environ.get("REMINDER_LEAD_DAYS", 1))

# Pause between consecutive deliveries (channel rate limits)
DISPATCH_PACING_SECONDS = float(os.environ.get("DISPATCH_PACING_SECONDS", 1.0))

# Sent reminders older than this are deleted by the sweeper
REMINDER_RETENTION_DAYS = int(os.environ.get("REMINDER_RETENTION_DAYS", 7))

# Daily job times (local time in TIMEZONE)
MATERIALIZE_HOUR = 23
MATERIALIZE_MINUTE = 59
DISPATCH_HOUR = 0
DISPATCH_MINUTE = 0
SWEEP_HOUR = 2
SWEEP_MINUTE = 0

# Create today's missing reminders when the scheduler starts (recovers a missed 23:59 run)
MATERIALIZE_ON_START = os.environ.get("MATERIALIZE_ON_START", "1").lower() not in ("0", "false", "no")

# Delivery backend: "discord" (bot channel), "webhook" (Discord webhooks) or "whatsapp" (Twilio)
NOTIFY_BACKEND = os.environ.get("NOTIFY_BACKEND", "discord").lower()

# Webhook routing: "group_id=https://discord.com/api/webhooks/...,other_group=..."
_webhooks = os.environ.get("BIRTHDAY_WEBHOOKS", "")
WEBHOOK_URLS = {}
if _webhooks:
    for pair in _webhooks.split(","):
        if "=" in pair:
            group_id, url = pair.split("=", 1)
            WEBHOOK_URLS[group_id.strip()] = url.strip()

# WhatsApp routing: "group_id=+2348000000001;+2348000000002,other_group=+447..."
_recipients = os.environ.get("BIRTHDAY_WHATSAPP_RECIPIENTS", "")
WHATSAPP_RECIPIENTS = {}
if _recipients:
    for pair in _recipients.split(","):
        if "=" in pair:
            group_id, numbers = pair.split("=", 1)
            WHATSAPP_RECIPIENTS[group_id.strip()] = [n.strip() for n in numbers.split(";") if n.strip()]

# HTTP timeout for webhook delivery
WEBHOOK_TIMEOUT = 10
