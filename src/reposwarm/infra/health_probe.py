"""Infrastructure: HTTP readiness polling.

A service counts as healthy the first time a GET returns any status code
below :data:`HEALTHY_STATUS_CEILING`.  The same policy is used while
provisioning and in the final verification pass.

Timing
------
* Polls every :data:`POLL_INTERVAL` seconds; the first request is sent
  after one interval, giving freshly launched processes time to bind.
* Each request is bounded by :data:`REQUEST_TIMEOUT`, clamped to the
  time left before the deadline.
* The overall deadline is measured on a monotonic clock, so a timeout is
  never reported before *timeout* seconds have elapsed.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

import httpx

from reposwarm.exceptions import HealthTimeoutError

logger = logging.getLogger(__name__)

POLL_INTERVAL: float = 2.0
REQUEST_TIMEOUT: float = 5.0
HEALTHY_STATUS_CEILING: int = 500


class HttpHealthProbe:
    """Concrete :class:`~reposwarm.core.protocols.HealthProbe` using httpx.

    Parameters
    ----------
    client:
        Optional pre-built :class:`httpx.Client` (tests inject one backed
        by :class:`httpx.MockTransport`).
    interval:
        Seconds between polls.
    clock, sleep:
        Time sources, injectable for tests.
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        *,
        interval: float = POLL_INTERVAL,
        request_timeout: float = REQUEST_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client or httpx.Client(follow_redirects=True)
        self._interval = interval
        self._request_timeout = request_timeout
        self._clock = clock
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Protocol methods
    # ------------------------------------------------------------------

    def wait_for_http(self, url: str, timeout: float) -> None:
        """Poll *url* until healthy.

        Raises
        ------
        HealthTimeoutError
            When no healthy response arrives within *timeout* seconds.
        """
        started = self._clock()
        deadline = started + timeout
        attempts = 0

        while True:
            remaining = deadline - self._clock()
            if remaining <= 0:
                break
            self._sleep(min(self._interval, remaining))

            remaining = deadline - self._clock()
            if remaining <= 0:
                break
            attempts += 1
            healthy, detail = self._probe(url, min(self._request_timeout, remaining))
            logger.debug("Health poll %d for %s: %s", attempts, url, detail)
            if healthy:
                return

        raise HealthTimeoutError(url, self._clock() - started)

    def check(self, url: str) -> tuple[bool, str]:
        """Send one GET to *url* and classify the response."""
        return self._probe(url, self._request_timeout)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _probe(self, url: str, timeout: float) -> tuple[bool, str]:
        try:
            response = self._client.get(url, timeout=timeout)
        except httpx.HTTPError as exc:
            return False, f"not responding ({type(exc).__name__})"
        if response.status_code < HEALTHY_STATUS_CEILING:
            return True, f"HTTP {response.status_code}"
        return False, f"HTTP {response.status_code}"

    def close(self) -> None:
        self._client.close()
