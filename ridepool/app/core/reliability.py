"""
Reliability utilities.

Includes the bounded compare-and-swap retry loop used by every ride
transaction, and a Circuit Breaker guarding the notification sink.
"""

import time
import logging
from typing import Awaitable, Callable, Any, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from ridepool.app.core.exceptions import BusyError, ConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_with_cas_retry(
    db: AsyncSession,
    ride_id: int,
    operation: Callable[[], Awaitable[T]],
    max_attempts: int,
) -> T:
    """
    Run ``operation`` as one transaction, retrying on lost compare-and-swap.

    Each attempt starts from a clean session so the operation re-reads the
    freshest ride snapshot. The transaction is committed only when the
    operation returns; any other exception rolls it back and propagates.

    Raises:
        BusyError: when every attempt lost the race
    """
    for attempt in range(1, max_attempts + 1):
        try:
            result = await operation()
            await db.commit()
            return result
        except ConflictError as exc:
            await db.rollback()
            logger.warning(
                "CAS conflict on ride %s (attempt %d/%d): %s",
                ride_id, attempt, max_attempts, exc
            )
        except Exception:
            await db.rollback()
            raise

    logger.warning("Giving up on ride %s after %d attempts", ride_id, max_attempts)
    raise BusyError(ride_id, max_attempts)


class CircuitOpenError(Exception):
    pass


class CircuitBreaker:
    """
    Simple Circuit Breaker implementation.
    If 'failure_threshold' failures occur, the circuit opens and rejects
    calls for 'reset_timeout' seconds, then lets one trial call through.
    """
    def __init__(self, failure_threshold: int = 5, reset_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.failures = 0
        self.last_failure_time = 0.0
        self.state = "CLOSED"  # CLOSED, OPEN, HALF_OPEN

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        if self.state == "OPEN":
            if time.monotonic() - self.last_failure_time > self.reset_timeout:
                self.state = "HALF_OPEN"
            else:
                raise CircuitOpenError("Circuit is OPEN")

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise

        if self.state == "HALF_OPEN" or self.failures:
            self.reset_state()
        return result

    def record_failure(self):
        self.failures += 1
        self.last_failure_time = time.monotonic()
        if self.state == "HALF_OPEN" or self.failures >= self.failure_threshold:
            self.state = "OPEN"

    def reset_state(self):
        self.failures = 0
        self.state = "CLOSED"
