"""Reminder materialization.

Turns "someone has a birthday on D" into a persisted pending reminder ahead of
D. Materialization is decoupled from delivery so that a crash between the two
never loses the obligation: it stays pending until a dispatch run sends it.
"""

from datetime import date

from logger import logger
from .date_math import month_days_on


class ReminderMaterializer:
    """Creates one pending reminder per eligible (event, date)."""

    def __init__(self, events, store):
        """Initialize materializer.

        Args:
            events: Event source with events_on(month, day) and is_group_active(group_id)
            store: ReminderStore
        """
        self.events = events
        self.store = store

    def materialize_for(self, target_date: date) -> int:
        """Create pending reminders for every birthday falling on target_date.

        Re-running for the same date is safe: existing reminders are skipped.

        Returns:
            Number of reminders actually created
        """
        created = 0
        skipped = 0
        inactive: dict[str, bool] = {}

        for month_day in month_days_on(target_date):
            for event in self.events.events_on(month_day.month, month_day.day):
                if event.group_id not in inactive:
                    inactive[event.group_id] = not self.events.is_group_active(event.group_id)
                if inactive[event.group_id]:
                    continue

                if self.store.create_if_absent(event.event_id, target_date):
                    created += 1
                else:
                    skipped += 1

        if skipped:
            logger.debug(f"Materializer: {skipped} reminder(s) for {target_date} already existed")
        logger.info(f"Materialized {created} reminder(s) for {target_date}")
        return created
