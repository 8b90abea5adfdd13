import logging
from typing import Dict, Tuple, List
import time

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Sliding-window rate limiter kept in process memory.

    Each process enforces its own window; with several workers the effective
    limit is multiplied by the worker count.
    """

    def __init__(self, window_size: int = 60, max_requests: int = 10):
        """
        Initialize a rate limiter

        Args:
            window_size: Time window in seconds
            max_requests: Maximum number of requests allowed within the window
        """
        self.window_size = window_size
        self.max_requests = max_requests
        # {key: [request timestamps inside the window]}
        self._hits: Dict[str, List[float]] = {}

    def is_rate_limited(self, key: str, now: float = None) -> Tuple[bool, int]:
        """
        Check if a request should be rate limited, recording it when allowed

        Args:
            key: Identifier for the rate limit (e.g., client IP)
            now: Current time in seconds, defaults to time.time()

        Returns:
            Tuple of (is_limited, retry_after)
            - is_limited: True if the request should be rate limited
            - retry_after: Seconds to wait before retrying (0 if not limited)
        """
        now = time.time() if now is None else now
        window_start = now - self.window_size

        hits = [timestamp for timestamp in self._hits.get(key, []) if timestamp > window_start]

        if len(hits) < self.max_requests:
            hits.append(now)
            self._hits[key] = hits
            return False, 0

        self._hits[key] = hits
        retry_after = int(hits[0] + self.window_size - now) + 1
        return True, max(1, retry_after)  # Ensure it's at least 1 second

    def reset(self) -> None:
        self._hits.clear()


# Create rate limiters with different policies
upload_rate_limiter = RateLimiter(window_size=60, max_requests=10)  # 10 uploads/min, each one is an OCR call
api_rate_limiter = RateLimiter(window_size=60, max_requests=60)  # 60 reqs/min for regular API
