"""
Internal exceptions and the cycle deadline.

None of these cross the analyzer boundary: the validator converts them into
invalid `ValidationResult`s.
"""

import time
from typing import Callable, Optional


class ReferenceUnavailable(Exception):
    """The reference template could not be decoded or produced no descriptors."""


class DeadlineExceeded(Exception):
    """A cycle ran past its wall-clock budget."""

    def __init__(self, stage: str, overrun_ms: float) -> None:
        super().__init__(f"budget exceeded before '{stage}' (+{overrun_ms:.0f}ms)")
        self.stage = stage
        self.overrun_ms = overrun_ms


class Deadline:
    """
    Wall-clock budget for one analysis cycle.

    The pipeline calls `check(stage)` at each stage boundary; there is no
    preemption inside a stage.
    """

    def __init__(self, budget_ms: Optional[float], clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self.budget_ms = budget_ms
        self.started = clock()

    @classmethod
    def unlimited(cls) -> "Deadline":
        return cls(None)

    def elapsed_ms(self) -> float:
        return (self._clock() - self.started) * 1000.0

    def remaining_ms(self) -> Optional[float]:
        if self.budget_ms is None:
            return None
        return self.budget_ms - self.elapsed_ms()

    @property
    def expired(self) -> bool:
        remaining = self.remaining_ms()
        return remaining is not None and remaining < 0

    def check(self, stage: str) -> None:
        remaining = self.remaining_ms()
        if remaining is not None and remaining < 0:
            raise DeadlineExceeded(stage, -remaining)
