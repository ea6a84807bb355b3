from __future__ import annotations

import logging
import math
import threading
import time
from collections import defaultdict, deque
from collections.abc import Callable
from dataclasses import dataclass

from bizintel.errors import RateLimitedError

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    """Rate limit configuration."""
    window_seconds: float = 60.0
    max_requests: int = 10


class SlidingWindowRateLimiter:
    """Per-client request counter over a sliding time window.

    State is per process, so the limit only holds for a single instance.
    """

    def __init__(self, config: RateLimitConfig | None = None, clock: Callable[[], float] = time.monotonic) -> None:
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._requests: dict[str, deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def check(self, client_id: str) -> None:
        """Record a request, raising RateLimitedError when the window is full."""
        now = self._clock()
        with self._lock:
            window = self._requests[client_id]
            while window and now - window[0] >= self.config.window_seconds:
                window.popleft()

            if len(window) >= self.config.max_requests:
                retry_after = math.ceil(self.config.window_seconds - (now - window[0]))
                logger.warning("Rate limit exceeded for client %s", client_id)
                raise RateLimitedError(
                    "Rate limit exceeded. Please wait before making another request.",
                    retry_after=retry_after,
                )

            window.append(now)

    def remaining(self, client_id: str) -> int:
        now = self._clock()
        with self._lock:
            window = self._requests.get(client_id, ())
            recent = sum(1 for stamp in window if now - stamp < self.config.window_seconds)
        return max(0, self.config.max_requests - recent)
