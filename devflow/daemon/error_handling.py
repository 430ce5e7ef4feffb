"""Error taxonomy and retry policy for oracle calls.

This module implements:
- The devflow exception hierarchy (oracle, validation, store)
- Classification of failure signals as transient or permanent
- Exponential backoff with jitter that only retries transient failures
"""

import asyncio
import json
import random
from enum import Enum
from typing import Optional, Callable, Any, Awaitable

import httpx
from loguru import logger
from pydantic import ValidationError as SchemaValidationError


class OracleErrorKind(Enum):
    """Whether an oracle failure is worth retrying."""
    TRANSIENT = "transient"
    PERMANENT = "permanent"


class DevflowError(Exception):
    """Base class for all devflow errors."""


class ValidationError(DevflowError):
    """Input rejected before any work was done (e.g. empty content)."""


class OracleError(DevflowError):
    """Failure of a call to the classification oracle."""

    kind: OracleErrorKind = OracleErrorKind.PERMANENT

    def __init__(self, message: str, status: Optional[int] = None):
        self.message = message
        self.status = status
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.kind == OracleErrorKind.TRANSIENT


class TransientOracleError(OracleError):
    """Overload, quota exhaustion or timeout. Retried."""

    kind = OracleErrorKind.TRANSIENT


class PermanentOracleError(OracleError):
    """Schema violation, auth failure, malformed request. Not retried."""

    kind = OracleErrorKind.PERMANENT


class SegmentationError(PermanentOracleError):
    """The oracle returned an implausible segmentation of a bulk input."""


class StoreError(DevflowError):
    """Opaque failure from the document store."""


class CriticalIngestionError(StoreError):
    """Both classification and persistence failed for an entry."""


TRANSIENT_STATUS_CODES = {429, 503, 504}

TRANSIENT_MARKERS = (
    "503",
    "overloaded",
    "unavailable",
    "quota",
    "resource exhausted",
    "resource_exhausted",
    "rate limit",
    "timeout",
    "timed out",
    "deadline",
)


def classify_failure(status: Optional[int], message: str) -> OracleErrorKind:
    """
    Classify a failure signal.

    Transient iff the status or message indicates overload, quota
    exhaustion or a timeout; everything else is permanent.
    """
    if status in TRANSIENT_STATUS_CODES:
        return OracleErrorKind.TRANSIENT

    lowered = (message or "").lower()
    if any(marker in lowered for marker in TRANSIENT_MARKERS):
        return OracleErrorKind.TRANSIENT

    return OracleErrorKind.PERMANENT


def make_oracle_error(status: Optional[int], message: str) -> OracleError:
    """Build the right OracleError subclass for a status/message pair."""
    if classify_failure(status, message) == OracleErrorKind.TRANSIENT:
        return TransientOracleError(message, status=status)
    return PermanentOracleError(message, status=status)


def to_oracle_error(error: Exception) -> OracleError:
    """Wrap an arbitrary transport exception as an OracleError."""
    if isinstance(error, OracleError):
        return error

    if isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)):
        return TransientOracleError(f"timeout: {error}")

    if isinstance(error, (httpx.ConnectError, httpx.RemoteProtocolError)):
        return TransientOracleError(f"oracle unavailable: {error}")

    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return make_oracle_error(status, f"HTTP {status}: {error.response.text[:200]}")

    if isinstance(error, (json.JSONDecodeError, SchemaValidationError)):
        return PermanentOracleError(f"malformed oracle output: {error}")

    status = getattr(error, "status", None) or getattr(error, "status_code", None)
    if not isinstance(status, int):
        status = None
    return make_oracle_error(status, str(error))


class RetryPolicy:
    """Retry policy with capped exponential backoff and additive jitter."""

    def __init__(self,
                 max_attempts: int = 3,
                 base_delay: float = 1.0,
                 max_delay: float = 10.0,
                 exponential_base: float = 2.0,
                 jitter: float = 0.5,
                 sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
                 rng: Optional[random.Random] = None):
        """
        Initialize retry policy.

        Args:
            max_attempts: Total attempts, including the first call
            base_delay: Delay before the second attempt, in seconds
            max_delay: Cap on the exponential part of the delay
            exponential_base: Growth factor per attempt
            jitter: Upper bound of the uniform random delay added on top
            sleep: Awaitable sleep, injectable for tests
            rng: Random source for jitter
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.Random()

    def calculate_delay(self, attempt: int) -> float:
        """
        Calculate delay after a failed attempt.

        Args:
            attempt: Attempt number (0-based)

        Returns:
            Delay in seconds
        """
        delay = min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)

        if self.jitter > 0:
            delay += self._rng.uniform(0, self.jitter)

        return delay

    async def execute(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Execute an async oracle call under this policy.

        Transient failures are retried until the attempt budget is spent;
        permanent failures surface immediately.

        Raises:
            OracleError: The last failure once retries are exhausted
        """
        for attempt in range(self.max_attempts):
            try:
                return await func(*args, **kwargs)

            except Exception as e:
                error = to_oracle_error(e)

                if not error.retryable:
                    logger.error(f"Permanent oracle failure, not retrying: {error}")
                    if error is e:
                        raise
                    raise error from e

                if attempt == self.max_attempts - 1:
                    logger.error(f"All {self.max_attempts} attempts failed: {error}")
                    if error is e:
                        raise
                    raise error from e

                delay = self.calculate_delay(attempt)
                logger.warning(
                    f"Oracle busy, retrying in {delay * 1000:.0f}ms "
                    f"(attempt {attempt + 1}/{self.max_attempts}): {error}"
                )
                await self._sleep(delay)

        raise PermanentOracleError("retry loop exited without a result")
