from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in every datetime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
