"""Retention sweep for reminder records."""

from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from logger import logger
from . import config
from .date_math import local_today, shift_days


class RetentionSweeper:
    """Deletes reminders whose target date is older than the retention window."""

    def __init__(self, store, tz: ZoneInfo):
        self.store = store
        self.tz = tz

    def sweep(self, now: datetime, retention_days: Optional[int] = None) -> int:
        """Delete sent reminders (and stale unsent ones) older than the window.

        Unsent reminders past the cutoff can never be dispatched again, since
        dispatch only targets the current day.

        Returns:
            Total number of records deleted
        """
        if retention_days is None:
            retention_days = config.REMINDER_RETENTION_DAYS
        cutoff = shift_days(local_today(now, self.tz), -retention_days)

        sent_deleted = self.store.delete_sent_before(cutoff)
        stale_deleted = self.store.delete_unsent_before(cutoff)

        if sent_deleted or stale_deleted:
            logger.info(f"Reminder cleanup: {sent_deleted} sent, {stale_deleted} stale unsent deleted (before {cutoff})")
        else:
            logger.debug(f"Reminder cleanup: nothing older than {cutoff}")
        return sent_deleted + stale_deleted
