"""
Behavioral Baseline Store.

A baseline summarizes a person's recent behavior: how often and how long
they talk, how their mood has been, and when they last interacted.  It is
recomputed from scratch on every refresh -- never incrementally updated --
so a bad day of data cannot accumulate into a permanent skew.

Mood arrives on a 0-5 scale and is stored on a 0-100 scale.
"""

from __future__ import annotations

import copy
import threading
from datetime import datetime
from typing import Optional

from careengine.models import BehavioralBaseline, WellbeingLog

MOOD_SCALE_FACTOR = 20


def compute_baseline(
    person_id: str,
    logs: list[WellbeingLog],
    last_interaction: Optional[datetime],
    now: datetime,
) -> BehavioralBaseline:
    """Compute a fresh baseline from a window of wellbeing logs.

    An empty window yields zero averages.  The mood average only counts logs
    that carry a mood score.
    """
    count = len(logs)
    moods = [log.mood_score for log in logs if log.mood_score is not None]

    avg_conversations = sum(log.conversation_count for log in logs) / count if count else 0.0
    avg_minutes = sum(log.conversation_minutes for log in logs) / count if count else 0.0
    avg_mood = (sum(moods) / len(moods)) * MOOD_SCALE_FACTOR if moods else 0.0

    return BehavioralBaseline(
        person_id=person_id,
        avg_daily_conversations=round(avg_conversations, 2),
        avg_mood_score=round(avg_mood, 2),
        avg_conversation_minutes=round(avg_minutes, 2),
        last_interaction=last_interaction,
        log_count=count,
        updated_at=now,
    )


class BaselineStore:
    """In-memory store holding one ``BehavioralBaseline`` per person."""

    def __init__(self) -> None:
        self._baselines: dict[str, BehavioralBaseline] = {}
        self._lock = threading.RLock()

    def get(self, person_id: str) -> Optional[BehavioralBaseline]:
        with self._lock:
            baseline = self._baselines.get(person_id)
            return copy.deepcopy(baseline) if baseline is not None else None

    def upsert(self, baseline: BehavioralBaseline) -> BehavioralBaseline:
        with self._lock:
            self._baselines[baseline.person_id] = copy.deepcopy(baseline)
            return copy.deepcopy(baseline)

    def __len__(self) -> int:
        return len(self._baselines)
