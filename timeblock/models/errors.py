from typing import Any, Optional


class SchedulerError(Exception):
    """Base exception for the scheduling core."""

    def __init__(self, message: str, details: Optional[Any] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class FormatError(SchedulerError):
    """Malformed time or date string."""


class ConfigError(SchedulerError):
    """Internally inconsistent workday configuration."""


class RecurrenceRuleError(ConfigError):
    """Recurrence rule missing dates or with an inverted range."""


class DurationError(SchedulerError):
    def __init__(self, message: str, minutes: int, limit: int):
        super().__init__(message, details={"minutes": minutes, "limit": limit})
        self.minutes = minutes
        self.limit = limit


class TooShortError(DurationError):
    pass


class TooLongError(DurationError):
    pass


class ConflictError(SchedulerError):
    """Fixed-time task overlapping busy time or another fixed task."""
