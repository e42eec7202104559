"""Request rate limiting for Patchwork proxy."""

import asyncio
import logging
import time
from typing import Optional

from .errors import RateLimitExceeded

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Enforces a minimum interval between accepted requests.

    With ``wait`` set, a request arriving too early sleeps until the interval
    has passed; otherwise it is rejected with RateLimitExceeded.
    """

    def __init__(self, seconds: Optional[float] = None, wait: bool = False, clock=time.monotonic):
        self.seconds = seconds
        self.wait = wait
        self._clock = clock
        self.last_request: Optional[float] = None

    async def check(self) -> None:
        if not self.seconds:
            return

        now = self._clock()
        if self.last_request is None:
            self.last_request = now
            return

        elapsed = now - self.last_request
        if elapsed >= self.seconds:
            self.last_request = now
            return

        remaining = self.seconds - elapsed
        if not self.wait:
            logger.warning(
                f"Rate limit exceeded. Need to wait {remaining:.1f} more seconds."
            )
            raise RateLimitExceeded("Rate limit exceeded")

        logger.warning(
            f"Rate limit reached. Waiting {remaining:.1f} seconds before proceeding..."
        )
        await asyncio.sleep(remaining)
        self.last_request = self._clock()
        logger.info("Rate limit wait completed, proceeding with request")
