"""Random-walk generator for the synthetic reading."""

from __future__ import annotations

import random
from decimal import Decimal
from typing import Optional

from settings import WALK_MODES

_HUNDREDTHS = Decimal("0.01")


class ReadingGenerator:
    """Pure component: the next reading depends only on the previous one and the rng.

    ``signed`` draws the sign from an independent fair coin. ``parity`` keeps
    the historical rule where an even hundredths digit (zero included) makes
    the step negative, which biases the walk downwards.
    """

    def __init__(self, mode: str = "signed") -> None:
        if mode not in WALK_MODES:
            raise ValueError(f"Unknown walk mode {mode!r}; expected one of {', '.join(WALK_MODES)}.")
        self.mode = mode

    def next(self, previous: Decimal, rng: Optional[random.Random] = None) -> Decimal:
        source = rng or random
        magnitude = Decimal(str(round(source.random(), 2))).quantize(_HUNDREDTHS)
        if self.mode == "parity":
            negative = int(magnitude * 100) % 2 == 0
        else:
            negative = source.random() < 0.5
        return previous - magnitude if negative else previous + magnitude
