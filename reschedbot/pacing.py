from __future__ import annotations

import logging
import random
import time
from typing import Callable

logger = logging.getLogger(__name__)


def random_delay(
    min_ms: int,
    max_ms: int,
    *,
    sleep: Callable[[float], None] = time.sleep,
    rng: random.Random | None = None,
) -> float:
    """Sleep for a uniform random time in [min_ms, max_ms] and return the seconds slept."""

    uniform = (rng or random).uniform
    seconds = uniform(min_ms, max_ms) / 1000.0
    logger.debug("Pausing %.2fs", seconds)
    sleep(seconds)
    return seconds
