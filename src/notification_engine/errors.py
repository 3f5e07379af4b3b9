"""Exception types raised by the notification engine."""


class NotificationEngineError(Exception):
    """Base class for engine errors."""


class ValidationError(NotificationEngineError, ValueError):
    """Malformed request or experiment definition; rejected before anything is persisted."""


class NotFoundError(NotificationEngineError, LookupError):
    """Referenced notification, record or test does not exist."""


class PersistenceCorruptionError(NotificationEngineError, ValueError):
    """Stored payload could not be parsed back into engine state."""


class TransportError(NotificationEngineError, RuntimeError):
    """The delivery transport rejected or failed to deliver a notification."""
