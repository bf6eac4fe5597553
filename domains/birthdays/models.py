"""Data types for birthdays and reminder records."""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from .errors import InvalidMonthDay

# 2000 is a leap year, so Feb 29 validates
_VALIDATION_YEAR = 2000


@dataclass(frozen=True, order=True)
class MonthDay:
    """Year-independent calendar day. Validated on construction."""
    month: int
    day: int

    def __post_init__(self):
        if not isinstance(self.month, int) or not isinstance(self.day, int):
            raise InvalidMonthDay(f"Month and day must be integers, got {self.month!r}-{self.day!r}")
        try:
            date(_VALIDATION_YEAR, self.month, self.day)
        except ValueError:
            raise InvalidMonthDay(f"Invalid month/day: {self.month:02d}-{self.day:02d}") from None

    @classmethod
    def parse(cls, text: str) -> "MonthDay":
        """Parse "MM-DD" (also accepts "DD/MM").

        Args:
            text: User or database supplied month/day text

        Returns:
            MonthDay

        Raises:
            InvalidMonthDay: If the text is malformed or out of range
        """
        raw = (text or "").strip()
        try:
            if "/" in raw:
                day_str, month_str = raw.split("/", 1)
            else:
                month_str, day_str = raw.split("-", 1)
            month, day = int(month_str), int(day_str)
        except ValueError:
            raise InvalidMonthDay(f"Could not parse month/day from {text!r} (expected MM-DD)") from None
        return cls(month, day)

    @property
    def is_leap_day(self) -> bool:
        return self.month == 2 and self.day == 29

    def __str__(self) -> str:
        return f"{self.month:02d}-{self.day:02d}"


@dataclass
class YearlyEvent:
    """A tracked birthday: one per (owner, group)."""
    event_id: str
    owner_id: str
    group_id: str
    month_day: MonthDay


@dataclass
class Group:
    group_id: str
    name: str
    active: bool = True


@dataclass
class ReminderRecord:
    """A materialized, dated obligation to deliver one notification."""
    reminder_id: str
    event_id: str
    target_date: date
    sent: bool
    sent_at: Optional[datetime]


@dataclass
class PendingReminder:
    """An unsent reminder joined with what delivery needs."""
    reminder_id: str
    event_id: str
    target_date: date
    owner_id: str
    group_id: str
    display_name: Optional[str]
    group_name: Optional[str]


@dataclass
class DispatchResult:
    """Outcome of one dispatch run."""
    sent: int = 0
    failed: int = 0

    def to_dict(self) -> dict:
        return {"sent": self.sent, "failed": self.failed}
