from __future__ import annotations

import bisect
import enum
import random
from typing import Sequence


class Operation(enum.Enum):
    """Kinds of work a task can perform. Declaration order is the tie-break order."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    PING = "ping"


OPERATION_ORDER: tuple[Operation, ...] = tuple(Operation)


class OperationSampler:
    """Draws operations from a fixed categorical distribution given in percent."""

    def __init__(self, create: int, read: int, update: int, delete: int, ping: int) -> None:
        weights = (create, read, update, delete, ping)
        if any(weight < 0 for weight in weights):
            raise ValueError("Operation rates must be non-negative")
        total = sum(weights)
        if total <= 0:
            raise ValueError("Operation rates must sum to > 0")

        thresholds: list[int] = []
        upto = 0
        for weight in weights:
            upto += weight
            thresholds.append(upto)
        self._thresholds: tuple[int, ...] = tuple(thresholds)

    @classmethod
    def from_rates(cls, rates: Sequence[int]) -> OperationSampler:
        return cls(*rates)

    @property
    def thresholds(self) -> tuple[int, ...]:
        return self._thresholds

    @property
    def total(self) -> int:
        return self._thresholds[-1]

    def sample(self, rng: random.Random | None = None) -> Operation:
        rng = rng or random
        return self.resolve(rng.randrange(self.total))

    def resolve(self, x: int) -> Operation:
        """Map a draw in ``[0, total)`` onto the operation whose half-open interval holds it."""
        if not 0 <= x < self.total:
            raise ValueError(f"Draw {x} outside [0, {self.total})")
        # bisect_right skips empty intervals sharing the same threshold
        return OPERATION_ORDER[bisect.bisect_right(self._thresholds, x)]
