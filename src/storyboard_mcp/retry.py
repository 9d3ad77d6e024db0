"""Backoff for transient failures of a single storyboard request.

Retries happen inside one analysis call, so they share its overall timeout
and never change the session generation. A rejected credential is returned
to the caller on the first attempt.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from .config import get_config
from .errors import is_auth_failure

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RETRYABLE_CODES = {429, 500, 503, 504}
_RETRYABLE_STATUSES = {"RESOURCE_EXHAUSTED", "UNAVAILABLE", "DEADLINE_EXCEEDED"}
_RETRYABLE_PATTERNS: tuple[str, ...] = (
    "429",
    "quota",
    "resource_exhausted",
    "timeout",
    "503",
    "service unavailable",
)


def _is_retryable(exc: Exception) -> bool:
    """Rate limits, overload and dropped connections are worth another attempt."""
    if is_auth_failure(exc):
        return False
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return True
    if getattr(exc, "code", None) in _RETRYABLE_CODES:
        return True
    if str(getattr(exc, "status", "") or "").upper() in _RETRYABLE_STATUSES:
        return True
    msg = str(exc).lower()
    return any(p in msg for p in _RETRYABLE_PATTERNS)


def backoff_delay(attempt: int, *, base: float, cap: float) -> float:
    """Exponential delay with up to one second of jitter, capped at *cap*."""
    return min(base * (2 ** attempt) + random.random(), cap)


async def with_retry(
    coro_factory: Callable[[], Awaitable[T]],
    *,
    label: str = "Gemini request",
) -> T:
    """Await ``coro_factory()`` until it succeeds or fails for good.

    Args:
        coro_factory: Zero-arg callable that returns a fresh awaitable each attempt.
        label: Names the request in retry log lines.

    Raises:
        The last exception once attempts run out, or the first one that is
        not transient.
    """
    cfg = get_config()
    max_attempts = cfg.retry_max_attempts

    for attempt in range(max_attempts):
        try:
            return await coro_factory()
        except Exception as exc:
            if not _is_retryable(exc) or attempt == max_attempts - 1:
                raise
            delay = backoff_delay(attempt, base=cfg.retry_base_delay, cap=cfg.retry_max_delay)
            logger.warning(
                "%s attempt %d/%d failed, retrying in %.1fs: %s",
                label, attempt + 1, max_attempts, delay, exc,
            )
            await asyncio.sleep(delay)
    raise RuntimeError(f"{label}: retry_max_attempts must be at least 1")
