from __future__ import annotations

from dataclasses import dataclass

# Consecutive "no earlier day anywhere" cycles tolerated before reloading the page.
REFRESH_THRESHOLD = 10


def should_refresh(count: int) -> bool:
    return count >= REFRESH_THRESHOLD


@dataclass
class RetryCounter:
    value: int = 0

    def increment(self) -> int:
        self.value += 1
        return self.value

    def reset(self) -> None:
        self.value = 0
