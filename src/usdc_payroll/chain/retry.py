"""Retry and timeout policy for blockchain RPC reads.

Only idempotent reads (``decimals``, ``balanceOf``, ``getTransactionReceipt``)
go through ``call_with_retry``. A token transfer is never retried here: a
resubmitted transfer may already have been broadcast, and the claim protocol
in the claim coordinator decides what is safe to do after a failed submit.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from usdc_payroll.exceptions import RpcTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_PATTERNS: tuple[str, ...] = (
    "failed to fetch",
    "timeout",
    "timed out",
    "network",
    "socket",
    "connection",
    "cannot start up",
    "failed to detect network",
    "rate limit",
    "too many requests",
    "429",
    "502",
    "503",
    "504",
)


def error_text(exc: BaseException) -> str:
    """Lower-cased message of an exception, falling back to its type name."""
    text = str(exc) or type(exc).__name__
    return text.lower()


def is_timeout_error(exc: BaseException) -> bool:
    """Check whether an error means the call did not resolve in time."""
    if isinstance(exc, (TimeoutError, RpcTimeoutError)):
        return True
    text = error_text(exc)
    return "timeout" in text or "timed out" in text


def is_transient_rpc_error(exc: BaseException) -> bool:
    """Check whether an RPC error is worth retrying.

    Timeouts, connection failures, rate limiting and gateway 5xx responses are
    transient. Anything else (bad input, contract revert) is permanent.
    """
    if is_timeout_error(exc) or isinstance(exc, ConnectionError):
        return True
    text = error_text(exc)
    return any(pattern in text for pattern in TRANSIENT_PATTERNS)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff with a hard timeout per attempt.

    Attributes:
        timeout_seconds: Budget for a single attempt.
        retries: Additional attempts after the first one.
        base_delay_seconds: Delay before the first retry; doubles each retry.
    """

    timeout_seconds: float = 8.0
    retries: int = 2
    base_delay_seconds: float = 0.35

    def __post_init__(self) -> None:
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        if self.retries < 0:
            raise ValueError("retries cannot be negative")
        if self.base_delay_seconds < 0:
            raise ValueError("base_delay_seconds cannot be negative")

    @property
    def max_attempts(self) -> int:
        return self.retries + 1

    def delay_for(self, retry_number: int) -> float:
        """Backoff before the given retry (1-based)."""
        return self.base_delay_seconds * (2 ** (retry_number - 1))


async def with_timeout(awaitable: Awaitable[T], seconds: float, label: str) -> T:
    """Await with a hard deadline, raising RpcTimeoutError when it passes."""
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as exc:
        raise RpcTimeoutError(f"{label} timeout after {int(seconds * 1000)}ms") from exc


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    label: str,
) -> T:
    """Run an idempotent RPC read under the retry/timeout policy.

    ``fn`` is called once per attempt so every attempt gets a fresh awaitable.
    Non-transient errors propagate immediately; transient ones are retried
    until ``policy.retries`` is exhausted, then the last error propagates.
    """
    attempt = 0
    while True:
        try:
            return await with_timeout(fn(), policy.timeout_seconds, label)
        except Exception as exc:
            attempt += 1
            if attempt > policy.retries or not is_transient_rpc_error(exc):
                raise
            delay = policy.delay_for(attempt)
            logger.debug(
                "Retrying %s after transient error (attempt %s/%s, delay %.2fs): %s",
                label,
                attempt,
                policy.retries,
                delay,
                exc,
            )
            await asyncio.sleep(delay)
