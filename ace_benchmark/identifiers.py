from __future__ import annotations

import itertools
import random
import threading

PREFIX = "ID"
KEY_LENGTH = 32


class IdentifierAllocator:
    """Issues record keys from a shared monotonic counter.

    ``allocate`` reserves a fresh key; ``sample_existing`` picks one of the keys
    issued so far. Deletions are not tracked, so a sampled key may already be
    gone on the remote side.
    """

    def __init__(self, prefix: str = PREFIX, length: int = KEY_LENGTH) -> None:
        if length <= len(prefix):
            raise ValueError("Key length must exceed the prefix length")
        self._prefix = prefix
        self._width = length - len(prefix)
        # next() on itertools.count is atomic under the GIL
        self._counter = itertools.count(start=1)
        self._issued = 0
        self._issued_lock = threading.Lock()

    @property
    def issued(self) -> int:
        return self._issued

    def allocate(self) -> str:
        value = next(self._counter)
        with self._issued_lock:
            if value > self._issued:
                self._issued = value
        return self.encode(value)

    def sample_existing(self, rng: random.Random | None = None) -> str:
        upper = self._issued
        if upper < 1:
            raise LookupError("No identifiers have been allocated yet")
        rng = rng or random
        return self.encode(rng.randint(1, upper))

    def encode(self, value: int) -> str:
        return f"{self._prefix}{value:0{self._width}d}"

    def decode(self, key: str) -> int:
        if not key.startswith(self._prefix):
            raise ValueError(f"Key {key!r} does not start with {self._prefix!r}")
        return int(key[len(self._prefix):])
