"""Wall clock and calendar keys in the configured timezone."""

from datetime import datetime

import pytz


class Clock:
    """Timezone-aware wall clock. Tests subclass it to control time."""

    def __init__(self, timezone: str = "UTC"):
        self.tz = pytz.timezone(timezone)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def hour_key(self, now: datetime | None = None) -> str:
        """e.g. ``2025-02-08T14``; sorts chronologically."""
        return (now or self.now()).strftime("%Y-%m-%dT%H")

    def day_key(self, now: datetime | None = None) -> str:
        """e.g. ``2025-02-08``; sorts chronologically."""
        return (now or self.now()).strftime("%Y-%m-%d")
