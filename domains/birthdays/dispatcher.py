"""Delivery of pending birthday reminders.

Each reminder is sent, then immediately marked sent, before moving on. A
failed delivery stays pending and is picked up by the next run. If the process
dies between a successful send and mark_sent the reminder is delivered again
next run: a rare duplicate is preferred over a lost announcement.
"""

import asyncio
import random
from datetime import date
from typing import Callable, Optional

from logger import logger
from . import config
from .errors import DeliveryFailed
from .messages import render_birthday_message
from .models import DispatchResult, PendingReminder


class DeliveryDispatcher:
    """Sends a day's pending reminders through a notification sink."""

    def __init__(
        self,
        store,
        sink,
        pacing_seconds: Optional[float] = None,
        render: Optional[Callable[[PendingReminder], str]] = None,
        rng: Optional[random.Random] = None
    ):
        """Initialize dispatcher.

        Args:
            store: ReminderStore
            sink: Notification sink with async send(group_id, text) -> bool
            pacing_seconds: Delay between deliveries (default from config)
            render: Message renderer (default: random birthday template)
            rng: Random source for template selection
        """
        self.store = store
        self.sink = sink
        self.pacing_seconds = config.DISPATCH_PACING_SECONDS if pacing_seconds is None else pacing_seconds
        self.rng = rng or random.Random()
        self.render = render or (lambda reminder: render_birthday_message(reminder, self.rng))

    async def dispatch_for(self, target_date: date) -> DispatchResult:
        """Deliver every pending reminder for target_date.

        StoreUnavailable aborts the run; delivery failures only affect their
        own reminder.

        Returns:
            DispatchResult with sent and failed counts
        """
        result = DispatchResult()
        pending = self.store.list_pending(target_date)

        if not pending:
            logger.info(f"No pending birthday reminders for {target_date}")
            return result

        logger.info(f"Dispatching {len(pending)} birthday reminder(s) for {target_date}")

        for index, reminder in enumerate(pending):
            if index > 0 and self.pacing_seconds > 0:
                await asyncio.sleep(self.pacing_seconds)

            if await self._deliver(reminder):
                if not self.store.mark_sent(reminder.reminder_id):
                    logger.warning(f"Reminder {reminder.reminder_id} was already marked sent by another run")
                result.sent += 1
            else:
                result.failed += 1

        logger.info(f"Dispatch for {target_date} complete - sent={result.sent}, failed={result.failed}")
        return result

    async def _deliver(self, reminder: PendingReminder) -> bool:
        """Send one reminder. Returns True on success; failures are logged, not raised."""
        try:
            text = self.render(reminder)
            delivered = await self.sink.send(reminder.group_id, text)
            if not delivered:
                raise DeliveryFailed(reminder.group_id, "sink reported failure")
        except DeliveryFailed as e:
            logger.error(f"Birthday reminder {reminder.reminder_id} for {reminder.owner_id} not delivered: {e}")
            return False
        except Exception as e:
            logger.error(f"Birthday reminder {reminder.reminder_id} for {reminder.owner_id} errored: {e}")
            return False

        logger.info(f"Sent birthday reminder for {reminder.display_name or reminder.owner_id} to {reminder.group_id}")
        return True
