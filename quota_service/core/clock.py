"""Time source shared by the quota engines"""

from datetime import datetime, timezone
from typing import Callable


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, matching the TIMESTAMP columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)
