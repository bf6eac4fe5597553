"""Birthday domain - yearly birthday tracking with at-most-once group announcements.

Reminders are materialized the day before, dispatched on the day and swept
after a retention window, all driven by APScheduler in a fixed timezone.
"""

from .date_math import days_until, next_occurrence, resolve_timezone
from .dispatcher import DeliveryDispatcher
from .errors import (
    BirthdayError,
    ConfigurationError,
    DeliveryFailed,
    InvalidMonthDay,
    StoreUnavailable,
)
from .materializer import ReminderMaterializer
from .models import DispatchResult, MonthDay, PendingReminder, ReminderRecord, YearlyEvent
from .scheduler import BirthdayScheduler
from .store import BirthdayRepository, Database, ReminderStore
from .sweeper import RetentionSweeper

__all__ = [
    "days_until",
    "next_occurrence",
    "resolve_timezone",
    "DeliveryDispatcher",
    "BirthdayError",
    "ConfigurationError",
    "DeliveryFailed",
    "InvalidMonthDay",
    "StoreUnavailable",
    "ReminderMaterializer",
    "DispatchResult",
    "MonthDay",
    "PendingReminder",
    "ReminderRecord",
    "YearlyEvent",
    "BirthdayScheduler",
    "BirthdayRepository",
    "Database",
    "ReminderStore",
    "RetentionSweeper",
]
