"""Wall-clock helpers. Everything the stores persist is keyed by epoch milliseconds."""

import time
from typing import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    return int(time.time() * 1000)


def hours_to_ms(hours: float) -> int:
    return int(hours * 60 * 60 * 1000)
