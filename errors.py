class CalendarSyncError(Exception):
    """Base class for errors raised by the calendar sync tool."""


class ConfigError(CalendarSyncError):
    """The configuration is missing or invalid; nothing has been processed."""


class CalendarBackendError(CalendarSyncError):
    """A call to the calendar backend failed."""

    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status
