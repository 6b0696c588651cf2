"""Wellbeing source -- read-only feed consumed by the baseline updater."""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from careengine.models import WellbeingLog


@runtime_checkable
class WellbeingSource(Protocol):
    """Abstract feed of daily wellbeing logs and interaction timestamps.

    Backed in production by the conversational memory store.
    """

    def wellbeing_logs(self, person_id: str, since: datetime) -> list[WellbeingLog]:
        """Logs created at or after ``since``."""
        ...

    def last_interaction(self, person_id: str) -> Optional[datetime]:
        """Timestamp of the most recent conversation, or None if there was none."""
        ...


class InMemoryWellbeingSource:
    """Process-local ``WellbeingSource`` for development and tests."""

    def __init__(self) -> None:
        self._logs: list[WellbeingLog] = []
        self._interactions: dict[str, datetime] = {}
        self._lock = threading.Lock()

    def add_log(self, log: WellbeingLog) -> None:
        with self._lock:
            self._logs.append(log)

    def record_interaction(self, person_id: str, at: datetime) -> None:
        with self._lock:
            current = self._interactions.get(person_id)
            if current is None or at > current:
                self._interactions[person_id] = at

    def wellbeing_logs(self, person_id: str, since: datetime) -> list[WellbeingLog]:
        with self._lock:
            return [
                log.model_copy()
                for log in self._logs
                if log.person_id == person_id and log.created_at >= since
            ]

    def last_interaction(self, person_id: str) -> Optional[datetime]:
        with self._lock:
            return self._interactions.get(person_id)
