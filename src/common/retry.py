from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

from loguru import logger


@dataclass(frozen=True)
class RetryPolicy:
    """
    Fixed-interval polling budget.

    interval:
        Seconds slept between two consecutive attempts.
    max_attempts:
        Upper bound on the number of times the condition is evaluated.
        The total wait is therefore at most interval * (max_attempts - 1).
    """

    interval: float = 60.0
    max_attempts: int = 5

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.interval < 0:
            raise ValueError(f"interval must be >= 0, got {self.interval}")


def poll_until(
    condition: Callable[[], bool],
    policy: RetryPolicy,
    *,
    sleep: Optional[Callable[[float], None]] = None,
    description: str = "condition",
) -> bool:
    """
    Evaluate `condition` until it returns True or the attempt budget is spent.

    Returns True as soon as the condition holds, False when every attempt
    reported False. Exceptions raised by `condition` are not retried: they
    propagate on the attempt that raised them. No sleep happens after the
    final attempt.
    """
    sleep_fn = sleep or time.sleep
    for attempt in range(1, policy.max_attempts + 1):
        if condition():
            return True
        if attempt >= policy.max_attempts:
            break
        logger.warning(
            "{} not met (attempt {}/{}), retrying in {}s",
            description,
            attempt,
            policy.max_attempts,
            policy.interval,
        )
        sleep_fn(policy.interval)
    return False


__all__ = ["RetryPolicy", "poll_until"]
