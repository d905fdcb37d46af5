from __future__ import annotations

import time
from typing import Callable, Optional

from tryon.errors import RequestTimeoutError


class Deadline:
    """Overall request budget, checked before each external call."""

    def __init__(
        self,
        seconds: Optional[float],
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self.started_at = clock()
        self.expires_at = None if not seconds or seconds <= 0 else self.started_at + seconds

    def remaining(self) -> Optional[float]:
        if self.expires_at is None:
            return None
        return max(self.expires_at - self._clock(), 0.0)

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self, stage: str) -> None:
        if self.expired():
            raise RequestTimeoutError(stage)

    def elapsed_ms(self) -> int:
        return int((self._clock() - self.started_at) * 1000)

    def timeout_for(self, default: float) -> float:
        """Per-call timeout capped by what is left of the overall budget."""

        remaining = self.remaining()
        if remaining is None:
            return default
        return max(min(default, remaining), 0.001)
