"""
MODULE OVERVIEW:
Retry delay strategies for anything that reconnects forever.

WHAT IS HAPPENING HERE:
The broker supervisor asks a `Backoff` how long to wait before attempt N.
The default is a flat 5 seconds between attempts. `ExponentialBackoff`
doubles the wait each time up to a cap and adds a little jitter so a fleet of
gateways restarting together does not hammer RabbitMQ in lockstep.
"""
import random
from typing import Protocol

from notification_gateway.shared.config import Settings


class Backoff(Protocol):
    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the `attempt`-th consecutive failure (1-based)."""
        ...


class FixedBackoff:
    def __init__(self, delay_s: float = 5.0):
        self.delay_s = delay_s

    def delay_for(self, attempt: int) -> float:
        return self.delay_s


class ExponentialBackoff:
    def __init__(self, base_delay_s: float = 1.0, max_delay_s: float = 32.0, jitter: float = 0.1):
        self.base_delay_s = base_delay_s
        self.max_delay_s = max_delay_s
        self.jitter = jitter

    def delay_for(self, attempt: int) -> float:
        delay = min(self.base_delay_s * (2 ** max(attempt - 1, 0)), self.max_delay_s)
        delay += random.uniform(0, delay * self.jitter)
        return delay


def backoff_from_settings(settings: Settings) -> Backoff:
    if settings.BROKER_BACKOFF == "exponential":
        return ExponentialBackoff(
            base_delay_s=settings.BROKER_RETRY_DELAY_S,
            max_delay_s=settings.BROKER_MAX_RETRY_DELAY_S,
        )
    return FixedBackoff(settings.BROKER_RETRY_DELAY_S)
