"""Exceptions raised by the reminders domain."""


class ReminderError(Exception):
    """Base class for reminder errors."""


class TimeSpecError(ReminderError, ValueError):
    """The requested reminder time is missing, conflicting or invalid."""


class ReminderNotFound(ReminderError):
    """No pending reminder with the requested ID."""


class ReminderPermissionError(ReminderError):
    """The requester may not touch this reminder."""


class StoreError(ReminderError):
    """The backing database failed."""


class DeliveryError(ReminderError):
    """Sending a reminder to its channel failed.

    recoverable is True when the failure is transient and the delivery
    should be retried later.
    """

    def __init__(self, message: str, recoverable: bool = False):
        super().__init__(message)
        self.recoverable = recoverable
