"""
Deal id generators.

All generators produce ``D-YYYYMMDD-<suffix>``; only uniqueness is part of
the contract, the suffix scheme is not.
"""
from __future__ import annotations

import random
import threading
import uuid
from datetime import date


class RandomDealIdGenerator:
    """uuid4-backed ids: D-20240115-9F3A1C0B."""

    def next_id(self, reference_date: date) -> str:
        return f"D-{reference_date:%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"


class SeededDealIdGenerator:
    """Reproducible ids for synthetic data and tests."""

    def __init__(self, seed: int):
        self._rng = random.Random(seed)
        self._issued: set[str] = set()

    def next_id(self, reference_date: date) -> str:
        while True:
            candidate = f"D-{reference_date:%Y%m%d}-{self._rng.getrandbits(32):08X}"
            if candidate not in self._issued:
                self._issued.add(candidate)
                return candidate


class SequentialDealIdGenerator:
    """Counter ids stamped with a fixed base date: D-20240115-00000001."""

    def __init__(self, base_date: date, start: int = 1):
        self.base_date = base_date
        self._counter = start
        self._lock = threading.Lock()

    def next_id(self, reference_date: date = None) -> str:
        with self._lock:
            value = self._counter
            self._counter += 1
        return f"D-{self.base_date:%Y%m%d}-{value:08d}"
