"""Birthday Reminder Bot - Discord entry point.

Each Discord channel is a birthday group: members register their birthday
in a channel and the bot announces it there on the day. The reminder engine
(domains.birthdays) runs on APScheduler inside the bot's event loop.
"""

import random
from dataclasses import dataclass
from datetime import datetime, timezone

import discord
from discord import app_commands
from discord.ext import commands
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from logger import logger
from config import DISCORD_TOKEN
from domains.birthdays import config as birthday_config
from domains.birthdays.date_math import days_until, next_occurrence, resolve_timezone
from domains.birthdays.dispatcher import DeliveryDispatcher
from domains.birthdays.errors import BirthdayError, InvalidMonthDay
from domains.birthdays.materializer import ReminderMaterializer
from domains.birthdays.messages import (
    format_history,
    format_upcoming,
    render_birthday_message,
    upcoming_birthdays,
)
from domains.birthdays.models import MonthDay
from domains.birthdays.scheduler import BirthdayScheduler
from domains.birthdays.sinks import DiscordChannelSink, create_sink
from domains.birthdays.store import BirthdayRepository, Database, ReminderStore
from domains.birthdays.sweeper import RetentionSweeper

UPCOMING_WINDOW_DAYS = 30


@dataclass
class BirthdayServices:
    """Everything the bot needs, built once on startup."""
    db: Database
    repository: BirthdayRepository
    reminders: ReminderStore
    scheduler: BirthdayScheduler


def build_services(apscheduler: AsyncIOScheduler, sink, db_path: str = None) -> BirthdayServices:
    """Wire the reminder engine together.

    Raises:
        ConfigurationError: If the configured timezone is unknown
    """
    db = Database(db_path)
    repository = BirthdayRepository(db)
    reminders = ReminderStore(db)

    rng = random.Random()
    if isinstance(sink, DiscordChannelSink):
        def render(reminder):
            return render_birthday_message(reminder, rng, mention=f"<@{reminder.owner_id}>")
    else:
        render = None

    tz = resolve_timezone(birthday_config.TIMEZONE)
    birthday_scheduler = BirthdayScheduler(
        apscheduler,
        materializer=ReminderMaterializer(repository, reminders),
        dispatcher=DeliveryDispatcher(reminders, sink, render=render, rng=rng),
        sweeper=RetentionSweeper(reminders, tz),
        timezone_name=birthday_config.TIMEZONE,
    )

    return BirthdayServices(db, repository, reminders, birthday_scheduler)


# Initialize bot
intents = discord.Intents.default()
intents.members = True
bot = commands.Bot(command_prefix="/", intents=intents)

# Initialize scheduler
scheduler = AsyncIOScheduler()

services: BirthdayServices = None  # Initialized in on_ready


STORE_ERROR_REPLY = "The birthday store is unavailable right now, try again later."
STARTING_UP_REPLY = "Still starting up, try again in a moment."
HISTORY_LIMIT = 10


@bot.event
async def on_ready():
    """Called when bot is connected and ready."""
    global services
    logger.info(f"Logged in as {bot.user}")

    # Sync slash commands with Discord
    try:
        synced = await bot.tree.sync()
        logger.info(f"Synced {len(synced)} slash commands")
    except Exception as e:
        logger.error(f"Failed to sync slash commands: {e}")

    if services is not None:
        # on_ready fires again after reconnects
        return

    sink = create_sink(bot=bot)
    services = build_services(scheduler, sink)
    services.scheduler.start()
    logger.info(f"Bot ready - birthday scheduler running in {services.scheduler.timezone_name}")


@bot.event
async def on_member_remove(member: discord.Member):
    """Forget a departed member's birthdays in that server's channels."""
    if services is None:
        return
    group_ids = [str(channel.id) for channel in member.guild.text_channels]
    try:
        services.repository.remove_owner_from_groups(str(member.id), group_ids)
    except BirthdayError as e:
        logger.error(f"Failed to remove birthdays for departed member {member.id}: {e}")


@bot.event
async def on_guild_join(guild: discord.Guild):
    """Resume announcing in a server that invited the bot back."""
    if services is None:
        return
    try:
        for channel in guild.text_channels:
            services.repository.set_group_active(str(channel.id), True)
    except BirthdayError as e:
        logger.error(f"Failed to reactivate channels of guild {guild.id}: {e}")


@bot.event
async def on_guild_remove(guild: discord.Guild):
    """Stop announcing in a server the bot was removed from."""
    if services is None:
        return
    try:
        for channel in guild.text_channels:
            services.repository.set_group_active(str(channel.id), False)
    except BirthdayError as e:
        logger.error(f"Failed to deactivate channels of guild {guild.id}: {e}")


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def _services_ready(interaction: discord.Interaction) -> bool:
    """Reply and return False if a command arrives before on_ready finished."""
    if services is None:
        await interaction.response.send_message(STARTING_UP_REPLY, ephemeral=True)
        return False
    return True


@bot.tree.command(name="birthday-add", description="Register your birthday in this channel")
@app_commands.describe(date="Your birthday as MM-DD (e.g. 03-15)")
async def cmd_birthday_add(interaction: discord.Interaction, date: str):
    """Add or update the caller's birthday for this channel."""
    if not await _services_ready(interaction):
        return

    try:
        month_day = MonthDay.parse(date)
    except InvalidMonthDay:
        await interaction.response.send_message(
            f"Couldn't read '{date}'. Use MM-DD, e.g. 03-15 for 15 March.",
            ephemeral=True
        )
        return

    channel = interaction.channel
    try:
        _, created = services.repository.add_or_update_birthday(
            owner_id=str(interaction.user.id),
            group_id=str(channel.id),
            month_day=month_day,
            display_name=interaction.user.display_name,
            group_name=f"#{getattr(channel, 'name', channel.id)}"
        )
    except BirthdayError as e:
        logger.error(f"Failed to save birthday: {e}")
        await interaction.response.send_message(STORE_ERROR_REPLY, ephemeral=True)
        return

    verb = "saved" if created else "updated"
    await interaction.response.send_message(f"🎂 Birthday {verb}: **{month_day}**", ephemeral=True)


@bot.tree.command(name="birthday-remove", description="Remove your birthday from this channel")
async def cmd_birthday_remove(interaction: discord.Interaction):
    """Delete the caller's birthday for this channel."""
    if not await _services_ready(interaction):
        return

    try:
        removed = services.repository.remove_birthday(str(interaction.user.id), str(interaction.channel.id))
    except BirthdayError as e:
        logger.error(f"Failed to remove birthday: {e}")
        await interaction.response.send_message(STORE_ERROR_REPLY, ephemeral=True)
        return

    if removed:
        await interaction.response.send_message("Birthday removed.", ephemeral=True)
    else:
        await interaction.response.send_message("You have no birthday saved here.", ephemeral=True)


@bot.tree.command(name="birthday-mine", description="Show the birthday you saved in this channel")
async def cmd_birthday_mine(interaction: discord.Interaction):
    """The caller's saved birthday and how far away it is."""
    if not await _services_ready(interaction):
        return

    try:
        event = services.repository.get_birthday(str(interaction.user.id), str(interaction.channel.id))
    except BirthdayError as e:
        logger.error(f"Failed to load birthday: {e}")
        await interaction.response.send_message(STORE_ERROR_REPLY, ephemeral=True)
        return

    if event is None:
        await interaction.response.send_message(
            "You have no birthday saved here. Use /birthday-add.", ephemeral=True
        )
        return

    now = _now()
    next_date = next_occurrence(event.month_day, now, services.scheduler.tz)
    remaining = days_until(next_date, now, services.scheduler.tz)
    await interaction.response.send_message(
        f"🎂 Your birthday here: **{event.month_day}** (next: {next_date.strftime('%d %b %Y')}, in {remaining} days)",
        ephemeral=True
    )


@bot.tree.command(name="birthdays", description="List upcoming birthdays in this channel")
async def cmd_birthdays(interaction: discord.Interaction):
    """Show birthdays in the next 30 days."""
    if not await _services_ready(interaction):
        return

    try:
        birthdays = services.repository.group_birthdays(str(interaction.channel.id))
    except BirthdayError as e:
        logger.error(f"Failed to list birthdays: {e}")
        await interaction.response.send_message(STORE_ERROR_REPLY, ephemeral=True)
        return

    upcoming = upcoming_birthdays(birthdays, _now(), services.scheduler.tz, UPCOMING_WINDOW_DAYS)
    await interaction.response.send_message(format_upcoming(upcoming))


@bot.tree.command(name="birthday-history", description="Show recent birthday announcements in this channel")
async def cmd_birthday_history(interaction: discord.Interaction):
    """Most recent announcements still within the retention window."""
    if not await _services_ready(interaction):
        return

    try:
        entries = services.reminders.history(str(interaction.channel.id), limit=HISTORY_LIMIT)
    except BirthdayError as e:
        logger.error(f"Failed to load reminder history: {e}")
        await interaction.response.send_message(STORE_ERROR_REPLY, ephemeral=True)
        return

    await interaction.response.send_message(format_history(entries), ephemeral=True)


@bot.tree.command(name="reminder-status", description="Show birthday scheduler status")
async def cmd_reminder_status(interaction: discord.Interaction):
    """Scheduler state and reminder counts."""
    if not await _services_ready(interaction):
        return

    status = services.scheduler.status()
    lines = [
        "**Birthday scheduler**",
        f"Running: {'yes' if status['running'] else 'no'}",
        f"Timezone: {status['timezone']}",
    ]
    for job_name, next_run in status["next_runs"].items():
        lines.append(f"- `{job_name}` next: {next_run or 'n/a'}")

    today = services.scheduler.today()
    try:
        todays = services.reminders.list_for_date(today)
        stats = services.reminders.stats(since=today)
    except BirthdayError as e:
        logger.error(f"Failed to load reminder stats: {e}")
        lines.append("Reminder counts unavailable (store error)")
    else:
        sent_today = sum(1 for record in todays if record.sent)
        lines.append(f"Today ({today}): {len(todays)} reminder(s), {sent_today} sent")
        lines.append(f"From today on: {stats['total']} ({stats['sent']} sent, {stats['pending']} pending)")

    await interaction.response.send_message("\n".join(lines), ephemeral=True)


@bot.tree.command(name="reminder-materialize", description="Create tomorrow's birthday reminders now")
@app_commands.default_permissions(administrator=True)
async def cmd_reminder_materialize(interaction: discord.Interaction):
    """Manual materialization trigger."""
    if not await _services_ready(interaction):
        return

    await interaction.response.defer(ephemeral=True)
    created = await services.scheduler.trigger_materialization_now()
    if created is None:
        await interaction.followup.send("Materialization failed - check logs.", ephemeral=True)
    else:
        await interaction.followup.send(f"Created {created} reminder(s) for tomorrow.", ephemeral=True)


@bot.tree.command(name="reminder-dispatch", description="Send today's pending birthday reminders now")
@app_commands.default_permissions(administrator=True)
async def cmd_reminder_dispatch(interaction: discord.Interaction):
    """Manual dispatch trigger."""
    if not await _services_ready(interaction):
        return

    await interaction.response.defer(ephemeral=True)
    result = await services.scheduler.trigger_dispatch_now()
    if result is None:
        await interaction.followup.send("Dispatch failed - check logs.", ephemeral=True)
    else:
        await interaction.followup.send(f"Sent {result.sent}, failed {result.failed}.", ephemeral=True)


@bot.event
async def on_error(event, *args, **kwargs):
    """Handle errors."""
    logger.error(f"Bot error in {event}: {args}")


def main():
    """Entry point."""
    if not DISCORD_TOKEN:
        logger.error("DISCORD_TOKEN not set")
        return

    # Fail fast on a bad timezone before connecting
    resolve_timezone(birthday_config.TIMEZONE)

    logger.info(f"Starting Birthday Reminder Bot ({birthday_config.TIMEZONE})...")
    bot.run(DISCORD_TOKEN, log_handler=None)  # discord.py logs through logger.py handlers


if __name__ == "__main__":
    main()
