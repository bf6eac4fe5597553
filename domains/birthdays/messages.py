"""Announcement text and birthday list formatting."""

import random
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from .date_math import days_until, next_occurrence
from .models import MonthDay, PendingReminder

# No ages in announcements: years are never stored
BIRTHDAY_TEMPLATES = [
    "🎉🎂 **HAPPY BIRTHDAY** 🎂🎉\n\n{mention} is celebrating their special day today!\n\n"
    "🎊 Wishing you a fantastic day filled with happiness and joy! 🎊",
    "🎈🎉 **BIRTHDAY CELEBRATION** 🎉🎈\n\n{mention} has a birthday today!\n\n"
    "🎂 May your special day be filled with wonderful moments and sweet memories! 🎂",
    "🎊🎁 **SPECIAL DAY ALERT** 🎁🎊\n\n{mention} is celebrating today!\n\n"
    "🌟 Hope your birthday is as amazing as you are! 🌟",
    "🎉🎵 **BIRTHDAY WISHES** 🎵🎉\n\n{mention} celebrates their birthday today!\n\n"
    "🎂 Have a wonderful birthday filled with love and laughter! 🎂",
]


@dataclass
class UpcomingBirthday:
    owner_id: str
    display_name: Optional[str]
    month_day: MonthDay
    next_date: date
    days_until: int


def render_birthday_message(
    reminder: PendingReminder,
    rng: Optional[random.Random] = None,
    mention: Optional[str] = None
) -> str:
    """Pick an announcement template for a pending reminder.

    Args:
        reminder: The reminder being delivered
        rng: Random source (inject a seeded one for reproducible output)
        mention: Transport-specific mention markup (default "@name")

    Returns:
        Plain message text
    """
    rng = rng or random
    if mention is None:
        mention = f"@{reminder.display_name}" if reminder.display_name else f"@{reminder.owner_id}"
    return rng.choice(BIRTHDAY_TEMPLATES).format(mention=mention)


def upcoming_birthdays(
    birthdays: list[tuple],
    reference: datetime,
    tz: ZoneInfo,
    within_days: int = 30
) -> list[UpcomingBirthday]:
    """Birthdays falling within the next within_days days, soonest first.

    Args:
        birthdays: (YearlyEvent, display_name) pairs, as from BirthdayRepository.group_birthdays
        reference: Current instant
        tz: Timezone defining "today"
        within_days: Window size in days (0 = today only)
    """
    upcoming = []
    for event, display_name in birthdays:
        next_date = next_occurrence(event.month_day, reference, tz)
        remaining = days_until(next_date, reference, tz)
        if remaining <= within_days:
            upcoming.append(UpcomingBirthday(
                owner_id=event.owner_id,
                display_name=display_name,
                month_day=event.month_day,
                next_date=next_date,
                days_until=remaining,
            ))

    upcoming.sort(key=lambda u: (u.days_until, u.display_name or u.owner_id))
    return upcoming


def format_upcoming(upcoming: list[UpcomingBirthday]) -> str:
    """Render the upcoming list for chat."""
    if not upcoming:
        return "No birthdays coming up."

    lines = ["**Upcoming birthdays:**\n"]
    for u in upcoming:
        name = u.display_name or u.owner_id
        if u.days_until == 0:
            when = "today 🎉"
        elif u.days_until == 1:
            when = "tomorrow"
        else:
            when = f"in {u.days_until} days"
        lines.append(f"- {u.next_date.strftime('%d %b')} - {name} ({when})")
    return "\n".join(lines)


def format_history(entries: list[tuple]) -> str:
    """Render recently sent announcements, as from ReminderStore.history."""
    if not entries:
        return "No birthday announcements yet."

    lines = ["**Recent birthday announcements:**\n"]
    for record, name in entries:
        lines.append(f"- {record.target_date.strftime('%d %b %Y')} - {name}")
    return "\n".join(lines)
