"""Randomised back-off delays between transaction retries."""

from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import dataclass, field

_DELAY_JITTER = 0.2


@dataclass(frozen=True)
class Throttler:
    """A delay in seconds that drifts randomly each time it is advanced."""

    duration: float
    rand: Callable[[], float] = field(default=random.random, compare=False, repr=False)

    def next(self) -> Throttler:
        """Return a throttler whose delay is this one with up to 20% jitter either way."""
        jitter = self.duration * _DELAY_JITTER
        return Throttler(
            self.duration - jitter + 2 * jitter * self.rand(),
            rand=self.rand,
        )

    def delay(self) -> float:
        """The delay in seconds."""
        return self.duration