"""
Per-user Rate Limiting

DESIGN DECISION: Rate limiting is an injected service, not module-level
state. The couple lifecycle asks ``allow(user_id)`` before doing work; an
HTTP layer may share the same limiter or bring its own.
"""

from collections import defaultdict, deque
from datetime import datetime, timedelta
from typing import Callable, Optional, Protocol
from uuid import UUID

from couple_finance.config import get_settings
from couple_finance.models.common import utc_now


class RateLimiter(Protocol):
    """Anything that can admit or refuse one request for a user."""

    def allow(self, user_id: UUID) -> bool:
        ...


class SlidingWindowRateLimiter:
    """
    Admits at most ``max_requests`` per user within any ``window_seconds``.

    Keeps the timestamps of admitted requests per user and drops those that
    have slid out of the window. Refused requests are not recorded, so a
    user hammering the limit recovers as soon as old requests age out.
    """

    def __init__(
        self,
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        settings = get_settings().rate_limit
        self._max_requests = max_requests or settings.max_requests
        self._window = timedelta(seconds=window_seconds or settings.window_seconds)
        self._clock = clock
        self._hits: dict[UUID, deque[datetime]] = defaultdict(deque)

    def allow(self, user_id: UUID) -> bool:
        now = self._clock()
        hits = self._hits[user_id]

        while hits and now - hits[0] >= self._window:
            hits.popleft()

        if len(hits) >= self._max_requests:
            return False

        hits.append(now)
        return True

    def remaining(self, user_id: UUID) -> int:
        """Requests the user may still make in the current window."""
        now = self._clock()
        live = [t for t in self._hits.get(user_id, ()) if now - t < self._window]
        return max(0, self._max_requests - len(live))

    def reset(self, user_id: Optional[UUID] = None) -> None:
        if user_id is None:
            self._hits.clear()
        else:
            self._hits.pop(user_id, None)
