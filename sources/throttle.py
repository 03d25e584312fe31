"""Per-service request throttling."""

import logging
import time
from typing import Callable

logger = logging.getLogger(__name__)


class RequestThrottle:
    """Enforce a minimum delay between requests to the same service.

    One instance is created per run and handed to the resolvers that need
    it, so the next-request table never leaks between runs or tests.

    Example:
        >>> throttle = RequestThrottle()
        >>> throttle.wait("https://gallery.example/api", 500)
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._clock = clock
        self._sleep = sleep
        self._next_request_at: dict[str, float] = {}

    def wait(self, service_url: str, delay_ms: int) -> float:
        """Block until a request to ``service_url`` is allowed.

        Args:
            service_url: Key of the throttled service.
            delay_ms: Minimum delay between two requests, in milliseconds.

        Returns:
            Seconds spent waiting.
        """
        if delay_ms <= 0:
            return 0.0

        now = self._clock()
        waited = 0.0
        next_at = self._next_request_at.get(service_url)

        if next_at is not None and next_at > now:
            waited = next_at - now
            logger.debug("Throttling %s for %.3fs", service_url, waited)
            self._sleep(waited)
            now = self._clock()

        self._next_request_at[service_url] = now + delay_ms / 1000.0
        return waited

    def reset(self) -> None:
        self._next_request_at.clear()
