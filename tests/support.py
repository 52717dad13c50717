"""Test doubles shared by the save-flow and API tests."""

from __future__ import annotations

from typing import List, Optional, Tuple

from supfit.errors import SaveError
from supfit.targets import DailyTargets


class FakeClock:
    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSink:
    """Collects upserts and fails with ``error`` while it is set."""

    def __init__(self) -> None:
        self.upserts: List[Tuple[str, DailyTargets]] = []
        self.error: Optional[SaveError] = None
        self.row: Optional[DailyTargets] = None
        self.fetch_error: Optional[SaveError] = None

    def upsert(self, user_id: str, targets: DailyTargets) -> None:
        self.upserts.append((user_id, targets))
        if self.error is not None:
            raise self.error

    def fetch(self, user_id: str) -> Optional[DailyTargets]:
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.row
