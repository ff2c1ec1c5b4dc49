"""Notifier contract. Delivery (email, SMS, push) lives outside the engine."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Called by the engine when a reminder or schedule change is due."""

    @abstractmethod
    def notify(self, recipient: str, message: str, fire_at: datetime) -> None:
        """Deliver ``message`` to ``recipient``. Raise on failure."""


class LoggingNotifier(Notifier):
    """Writes notifications to the log. Default when no delivery channel is wired in."""

    def notify(self, recipient: str, message: str, fire_at: datetime) -> None:
        logger.info("Notify %s: %s", recipient, message)
