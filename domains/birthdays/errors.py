"""Exceptions raised by the birthday reminder engine."""


class BirthdayError(Exception):
    """Base class for birthday domain errors."""


class StoreUnavailable(BirthdayError):
    """The persistence layer could not be reached or failed mid-operation.

    Jobs abort the current run on this error and rely on the next scheduled
    run to retry.
    """


class DeliveryFailed(BirthdayError):
    """The notification sink rejected or could not send one message."""

    def __init__(self, group_id: str, reason: str):
        super().__init__(f"Delivery to {group_id} failed: {reason}")
        self.group_id = group_id
        self.reason = reason


class InvalidMonthDay(BirthdayError, ValueError):
    """A month/day pair is outside the calendar (e.g. 13-01 or 04-31)."""


class ConfigurationError(BirthdayError):
    """Invalid configuration discovered at startup (e.g. unknown timezone)."""
