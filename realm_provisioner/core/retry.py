"""Bounded retry helpers for remote Keycloak calls.

Two flavours:
- RetryPolicy: fixed attempt budget with a fixed pause, surfaces the last error
- retry_on_unknown_host: retries only while DNS has not converged yet
"""
from __future__ import annotations
import logging
import socket
import time
from typing import Callable, Iterator, Tuple, Type, TypeVar

from urllib3.exceptions import NameResolutionError


logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_DELAY = 2.0
DEFAULT_DNS_RETRIES = 10


class RetryPolicy:
    """Run an action up to ``max_attempts`` times with a fixed pause between failures.

    Usage:
        policy = RetryPolicy(max_attempts=10, delay=2.0)
        user_id = policy.execute(lambda: ensure_user(...))
    """

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        delay: float = DEFAULT_DELAY,
        *,
        fatal: Tuple[Type[BaseException], ...] = (),
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize retry policy.

        Args:
            max_attempts: Total number of attempts (must be >= 1)
            delay: Seconds to sleep after each failed attempt
            fatal: Exception types re-raised on first occurrence
            sleep: Sleep function (injectable for tests)
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if delay < 0:
            raise ValueError("delay must not be negative")
        self.max_attempts = max_attempts
        self.delay = delay
        self.fatal = fatal
        self._sleep = sleep

    def execute(self, action: Callable[[], T], description: str = "operation") -> T:
        """Call ``action`` until it succeeds or the attempt budget is spent.

        Args:
            action: Zero-argument callable
            description: Label used in log messages

        Returns:
            Whatever ``action`` returns on its first successful attempt

        Raises:
            The last failure once ``max_attempts`` attempts have failed, or a
            ``fatal`` exception as soon as it occurs.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return action()
            except self.fatal:
                raise
            except Exception as exc:
                if attempt == self.max_attempts:
                    logger.error("[retry] %s failed after %d attempts: %s", description, attempt, exc)
                    raise
                logger.info(
                    "[retry] Exception querying keycloak during %s (%s), retrying (%d/%d)",
                    description, exc, attempt, self.max_attempts,
                )
                self._sleep(self.delay)
        raise AssertionError("unreachable")


def _causes(exc: BaseException) -> Iterator[BaseException]:
    """Walk an exception and everything it wraps, each at most once."""
    seen: set[int] = set()
    pending = [exc]
    while pending:
        current = pending.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        pending.append(current.__cause__)
        pending.append(current.__context__)
        # urllib3 MaxRetryError / NewConnectionError keep the cause in .reason
        reason = getattr(current, "reason", None)
        if isinstance(reason, BaseException):
            pending.append(reason)
        pending.extend(arg for arg in current.args if isinstance(arg, BaseException))


def is_unknown_host(exc: BaseException) -> bool:
    """Return True when ``exc`` was ultimately caused by a DNS lookup failure."""
    return any(isinstance(cause, (socket.gaierror, NameResolutionError)) for cause in _causes(exc))


def root_cause(exc: BaseException) -> BaseException:
    """Return the innermost explicitly chained cause of ``exc``."""
    current = exc
    while current.__cause__ is not None:
        current = current.__cause__
    return current


def retry_on_unknown_host(max_retries: int, action: Callable[[], T]) -> T:
    """Call ``action``, retrying only while it fails on name resolution.

    Any other failure is logged with its root cause and re-raised without
    consuming a retry.

    Args:
        max_retries: Remaining retries after the first call
        action: Zero-argument callable

    Returns:
        Result of the first successful call
    """
    try:
        return action()
    except Exception as exc:
        if is_unknown_host(exc) and max_retries > 0:
            logger.debug("[retry] Host not resolvable yet (%s), %d retries left", exc, max_retries)
            return retry_on_unknown_host(max_retries - 1, action)
        cause = root_cause(exc)
        if cause is not exc:
            logger.warning("[retry] Request failed: %s (caused by %r)", exc, cause)
        else:
            logger.warning("[retry] Request failed: %s", exc)
        raise
