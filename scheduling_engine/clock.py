"""Injectable time source so scheduling decisions are deterministic under test."""

from datetime import datetime, tzinfo


class SystemClock:
    """Wall-clock time in the firm's timezone."""

    def __init__(self, tz: tzinfo) -> None:
        self.tz = tz

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self):
        return self.now().date()
