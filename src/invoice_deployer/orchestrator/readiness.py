"""Blocks until a freshly provisioned host accepts SSH commands."""

from __future__ import annotations

import time
from typing import Callable, Protocol

from ..errors import ReadinessTimeout
from ..utils.logging import get_logger

logger = get_logger(__name__)


class Probe(Protocol):
    def check(self, host: str, command: str = ...) -> bool:
        ...


class ReadinessPoller:
    """Fixed-interval polling with a bounded attempt budget.

    The first probe counts against the budget, so a host reachable on probe N
    costs N attempts and N-1 sleeps. No sleep follows the final failed probe.
    """

    def __init__(
        self,
        probe: Probe,
        *,
        max_attempts: int = 30,
        interval: float = 30,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.probe = probe
        self.max_attempts = max_attempts
        self.interval = interval
        self._sleep = sleep

    def wait_until_ready(self, address: str) -> int:
        """Return the number of attempts it took for `address` to answer."""
        logger.info("Waiting for instance %s to be ready...", address)
        for attempt in range(1, self.max_attempts + 1):
            if self.probe.check(address, "echo 'Instance ready'"):
                logger.info("✓ Instance is ready for deployment")
                return attempt
            if attempt == self.max_attempts:
                break
            logger.info(
                "Attempt %d/%d - Instance not ready yet, waiting %ss...",
                attempt,
                self.max_attempts,
                self.interval,
            )
            self._sleep(self.interval)
        raise ReadinessTimeout(address, self.max_attempts)
