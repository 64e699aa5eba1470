"""
Bounded backoff for optimistic-concurrency retries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from memberscale.core.errors import ConflictError

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """
    Conflict retry schedule.

    Delay before retry ``n`` is ``initial_delay * factor ** (n - 1)`` capped at
    ``max_delay``, plus up to ``jitter * initial_delay`` of random spread.
    """

    attempts: int = 4
    initial_delay: float = 0.01
    factor: float = 5.0
    max_delay: float = 1.0
    jitter: float = 0.1

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError(f"retry attempts must be >= 1, got {self.attempts}")
        if self.initial_delay < 0 or self.max_delay < 0 or self.jitter < 0:
            raise ValueError("retry delays and jitter must be non-negative")
        if self.factor < 1:
            raise ValueError(f"retry factor must be >= 1, got {self.factor}")

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "RetryPolicy":
        defaults = cls()
        return cls(
            attempts=int(values.get("attempts", defaults.attempts)),
            initial_delay=float(values.get("initial_delay", defaults.initial_delay)),
            factor=float(values.get("factor", defaults.factor)),
            max_delay=float(values.get("max_delay", defaults.max_delay)),
            jitter=float(values.get("jitter", defaults.jitter)),
        )


def conflict_retrying(policy: RetryPolicy, sleep: Optional[Callable[[float], None]] = None) -> Retrying:
    """Build a ``Retrying`` controller that only retries on :class:`ConflictError`."""
    wait = wait_exponential(multiplier=policy.initial_delay, exp_base=policy.factor, max=policy.max_delay)
    if policy.jitter > 0 and policy.initial_delay > 0:
        wait = wait + wait_random(0, policy.jitter * policy.initial_delay)

    kwargs: Dict[str, Any] = {
        "stop": stop_after_attempt(policy.attempts),
        "wait": wait,
        "retry": retry_if_exception_type(ConflictError),
        "reraise": True,
        "before_sleep": before_sleep_log(logger, logging.DEBUG),
    }
    if sleep is not None:
        kwargs["sleep"] = sleep
    return Retrying(**kwargs)
