"""
Delivery transports.

A transport is any object with ``deliver(notification) -> bool``. Returning
False or raising both count as a failed delivery.
"""

import logging
from typing import List

from .errors import TransportError
from .schema import NotificationContent

logger = logging.getLogger(__name__)


def deliver(transport, notification: NotificationContent) -> None:
    """
    Hand ``notification`` to ``transport``.

    Raises:
        TransportError: when the transport raises or returns False
    """
    try:
        ok = transport.deliver(notification)
    except TransportError:
        raise
    except Exception as e:
        raise TransportError(f"Transport raised for {notification.id}: {e}") from e
    if ok is False:
        raise TransportError(f"Transport rejected {notification.id}")


class RecordingTransport:
    """Keeps every delivered notification in memory; can be told to fail."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.delivered: List[NotificationContent] = []

    def deliver(self, notification: NotificationContent) -> bool:
        if self.fail:
            return False
        self.delivered.append(notification)
        return True


class LoggingTransport:
    """Writes each notification to the log; used by the demo script."""

    def deliver(self, notification: NotificationContent) -> bool:
        logger.info(f"[deliver] {notification.id} {notification.title!r}: {notification.body}")
        return True
