class PresenceError(Exception):
    """Base class for errors raised by the presence core."""


class ValidationError(PresenceError):
    """Missing or invalid caller input. Never retried."""


class StorageError(PresenceError):
    """The heartbeat store could not be reached or the write failed."""


class DeadlineExceeded(PresenceError, TimeoutError):
    """The caller's deadline passed before the operation completed."""
