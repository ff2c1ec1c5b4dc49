"""Background polling loop shared by the recurring-task and reminder schedulers."""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger(__name__)


class PollingWorker(ABC):
    """
    Runs ``run_pending`` every ``poll_interval`` seconds on a daemon thread.

    An exception escaping ``run_pending`` is logged and the loop carries on;
    one bad poll must not stop future ones.
    """

    def __init__(self, name: str, poll_interval: float) -> None:
        self.name = name
        self.poll_interval = poll_interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @abstractmethod
    def run_pending(self):
        """Do whatever work is due right now."""

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()
        logger.info("%s started (poll every %.1fs)", self.name, self.poll_interval)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("%s stopped", self.name)

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_pending()
            except Exception:
                logger.exception("%s poll failed", self.name)
            self._stop.wait(self.poll_interval)
