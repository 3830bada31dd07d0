"""Deadline-bounded retry executor.

The callable passed to ``retry_context()`` signals its outcome by
returning (success), raising ``RetryableError`` (sleep and try again) or
raising ``NonRetryableError`` (stop now). The wrapped error is what the
caller finally sees.

Usage::

    def step() -> None:
        resp = client.get_cluster(cluster_id)
        if resp.status_code >= 500:
            raise RetryableError(StatusError(...))

    retry_context(300, step, backoff=ConstantBackoff(10))
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, TypeVar

from fleetopt.errors import FleetOptError, StatusError, TransportError
from fleetopt.sdk.response import is_retryable_status

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _as_error(err: BaseException | str) -> BaseException:
    return err if isinstance(err, BaseException) else FleetOptError(err)


class RetryableError(Exception):
    """Raised from a retried callable to request another attempt."""

    def __init__(self, err: BaseException | str) -> None:
        self.err = _as_error(err)
        super().__init__(str(self.err))


class NonRetryableError(Exception):
    """Raised from a retried callable to stop immediately with ``err``."""

    def __init__(self, err: BaseException | str) -> None:
        self.err = _as_error(err)
        super().__init__(str(self.err))


class RetryTimeoutError(FleetOptError):
    """The deadline elapsed while the last attempt was still retryable."""

    def __init__(self, timeout: float, last_error: BaseException | None) -> None:
        self.timeout = timeout
        self.last_error = last_error
        super().__init__(
            f"timeout after {timeout:g}s while waiting to succeed; "
            f"last error: {last_error}"
        )


class RetryCancelledError(FleetOptError):
    """The retry loop was cancelled from outside."""


# --- Backoff policies ---


class Backoff(Protocol):
    def interval(self, attempt: int) -> float:
        """Seconds to sleep after the *attempt*-th failure (0-based)."""
        ...


@dataclass(frozen=True)
class ExponentialBackoff:
    """Bounded exponential backoff, used for REST writes."""

    initial: float = 1.0
    factor: float = 2.0
    cap: float = 30.0

    def interval(self, attempt: int) -> float:
        return min(self.cap, self.initial * self.factor ** attempt)


@dataclass(frozen=True)
class ConstantBackoff:
    """Fixed interval, used for status polling loops."""

    seconds: float = 10.0

    def interval(self, attempt: int) -> float:
        return self.seconds


# --- Executor ---


def retry_context(
    timeout: float,
    fn: Callable[[], T],
    *,
    backoff: Backoff | None = None,
    max_attempts: int | None = None,
    cancel: threading.Event | None = None,
    _clock: Callable[[], float] | None = None,
    _sleep: Callable[[float], None] | None = None,
) -> T:
    """Run *fn* until it succeeds, fails permanently, or *timeout* elapses.

    Sleeps are clipped to the remaining time. When *cancel* is set during a
    sleep, the loop stops with ``RetryCancelledError``.
    """
    clock = _clock or time.monotonic
    sleep = _sleep or time.sleep
    policy = backoff or ExponentialBackoff()
    deadline = clock() + timeout
    attempt = 0

    while True:
        try:
            return fn()
        except NonRetryableError as e:
            raise e.err from None
        except RetryableError as e:
            last_error = e.err

        attempt += 1
        remaining = deadline - clock()
        if remaining <= 0 or (max_attempts is not None and attempt >= max_attempts):
            raise RetryTimeoutError(timeout, last_error) from last_error

        delay = min(policy.interval(attempt - 1), remaining)
        logger.debug("Retrying in %.1fs: %s", delay, last_error)

        if cancel is not None:
            if cancel.wait(delay):
                raise RetryCancelledError(
                    f"retry cancelled; last error: {last_error}"
                ) from last_error
        else:
            sleep(delay)


def is_transient(err: BaseException) -> bool:
    """Transport failures and 5xx/429 responses are worth retrying."""
    if isinstance(err, TransportError):
        return True
    return isinstance(err, StatusError) and is_retryable_status(err.status_code)


def retry_call(
    fn: Callable[[], T],
    *,
    timeout: float,
    backoff: Backoff | None = None,
    is_permanent: Callable[[FleetOptError], bool] | None = None,
    notify: Callable[[FleetOptError], None] | None = None,
    max_attempts: int | None = None,
    cancel: threading.Event | None = None,
    _clock: Callable[[], float] | None = None,
    _sleep: Callable[[float], None] | None = None,
) -> T:
    """Retry a plain callable that raises ``FleetOptError`` on failure.

    Errors for which *is_permanent* returns ``True`` stop the loop at once.
    *notify* sees every error that will be retried. Exceptions outside the
    ``FleetOptError`` family propagate unchanged.
    """

    def attempt() -> T:
        try:
            return fn()
        except FleetOptError as e:
            if is_permanent is not None and is_permanent(e):
                raise NonRetryableError(e) from e
            if notify is not None:
                notify(e)
            raise RetryableError(e) from e

    return retry_context(
        timeout,
        attempt,
        backoff=backoff,
        max_attempts=max_attempts,
        cancel=cancel,
        _clock=_clock,
        _sleep=_sleep,
    )
