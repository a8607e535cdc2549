import logging
import time
from typing import Any, Awaitable, Callable

from .exceptions import UpstreamError

logger = logging.getLogger(__name__)


class CircuitOpenError(UpstreamError):
    def __init__(self, name: str, retry_after: float):
        super().__init__(
            message=f"{name} is temporarily unavailable. Please try again shortly.",
            details={"retry_after": round(retry_after, 1)},
        )


class CircuitBreaker:
    def __init__(
        self,
        name: str,
        failure_threshold: int = 3,
        base_recovery_time: int = 10,
        max_recovery_time: int = 60,
        ignore: tuple[type[BaseException], ...] = (),
    ):
        self.name = name
        self.failure_count = 0
        self.failure_threshold = failure_threshold
        self.base_recovery_time = base_recovery_time
        self.max_recovery_time = max_recovery_time
        self.last_failure_time = 0.0
        self.state = "CLOSED"
        # errors the caller caused; they never trip the circuit
        self.ignore = ignore

    @property
    def current_recovery_time(self) -> float:
        exponent = max(self.failure_count - self.failure_threshold, 0)
        return min(
            self.base_recovery_time * (2**exponent),
            self.max_recovery_time,
        )

    def _open(self):
        self.state = "OPEN"
        self.last_failure_time = time.time()
        logger.warning(f"[{self.name}] Circuit opened after {self.failure_count} failures.")

    def _half_open(self):
        self.state = "HALF_OPEN"
        logger.info(f"[{self.name}] Circuit half-open: testing...")

    def _close(self):
        if self.state != "CLOSED":
            logger.info(f"[{self.name}] Circuit closed: stable again.")
        self.state = "CLOSED"
        self.failure_count = 0

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        now = time.time()

        if self.state == "OPEN":
            cooldown = self.current_recovery_time
            elapsed = now - self.last_failure_time
            if elapsed < cooldown:
                raise CircuitOpenError(self.name, cooldown - elapsed)
            self._half_open()

        try:
            result = await func(*args, **kwargs)
        except self.ignore:
            raise
        except Exception as e:
            self.failure_count += 1
            logger.error(f"[{self.name}] call failed ({self.failure_count}): {e}")

            if self.state == "HALF_OPEN" or self.failure_count >= self.failure_threshold:
                self._open()
            raise

        self._close()
        return result


email_breaker = CircuitBreaker(name="smtp", failure_threshold=3, base_recovery_time=30)
