from __future__ import annotations

import random
import time


def compute_backoff(attempt: int, base: float = 1.5, jitter: float = 0.5) -> float:
    """Compute exponential backoff with jitter."""
    delay = base ** attempt
    return delay + random.uniform(0, jitter)


def sleep_backoff(attempt: int, base: float = 1.5, jitter: float = 0.5) -> None:
    """Block for the computed backoff delay before retrying."""
    time.sleep(compute_backoff(attempt, base=base, jitter=jitter))
