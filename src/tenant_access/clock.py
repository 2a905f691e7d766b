"""Injectable wall clock.

Services take a ``Clock`` callable instead of calling ``datetime.now``
directly so tests can pin the current day.
"""

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)
