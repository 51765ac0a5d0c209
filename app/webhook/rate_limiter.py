import time
from collections import defaultdict, deque


class RateLimiter:
    """Sliding-window limit on inbound messages per sender."""

    def __init__(self, max_requests: int, window_seconds: int):
        self._max_requests = max_requests
        self._window = window_seconds
        self._requests: dict[str, deque[float]] = defaultdict(deque)

    def is_allowed(self, sender_id: str) -> bool:
        now = time.monotonic()
        q = self._requests[sender_id]

        # Drop timestamps that left the window
        cutoff = now - self._window
        while q and q[0] <= cutoff:
            q.popleft()

        if len(q) >= self._max_requests:
            return False

        q.append(now)
        return True
