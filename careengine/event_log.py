"""
Append-Only, Tamper-Evident Care Event Log (Hash-Chained).

Every signal the engine evaluates -- including ones suppressed by cooldown or
logged while care is disabled -- becomes exactly one ``CareEvent`` in this
log.  The log is the source of truth for the cooldown, weekly cap,
corroboration and false-alarm queries, so it must offer read-your-writes
consistency for a single person.

**What may change after append:**

* ``outcome`` and ``resolved_at`` -- set by a human reviewer, or to
  ``escalated`` by the dispatcher.
* ``ai_contacted_elderly`` and the external contact fields -- set once by the
  dispatcher, never overwritten.
* ``contact_attempts`` -- append only.

Everything else (category, risk score, escalation layer, rationale) is the
audit record.  Those fields are linked through a SHA-256 hash chain, and
``verify_chain()`` detects any modification of them after the fact.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import threading
from datetime import datetime
from typing import Any, Optional

from careengine.models import (
    CareEvent,
    ContactAttempt,
    EventOutcome,
    OutreachChannel,
    TriggerCategory,
    utc_now,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class EventNotFoundError(KeyError):
    """Raised when an event id is not in the log."""


class InvalidOutcomeTransitionError(Exception):
    """Raised when an outcome change is not permitted."""


class ContactAlreadyRecordedError(Exception):
    """Raised when a set-once contact field would be overwritten."""


# ---------------------------------------------------------------------------
# Outcome transitions
# ---------------------------------------------------------------------------

_VALID_OUTCOME_TRANSITIONS: dict[EventOutcome, set[EventOutcome]] = {
    EventOutcome.PENDING: {
        EventOutcome.ESCALATED,
        EventOutcome.RESOLVED,
        EventOutcome.FALSE_ALARM,
    },
    EventOutcome.ESCALATED: {EventOutcome.RESOLVED, EventOutcome.FALSE_ALARM},
    EventOutcome.RESOLVED: {EventOutcome.FALSE_ALARM},
    EventOutcome.FALSE_ALARM: set(),  # terminal state
}


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------

def canonical_bytes(event: CareEvent) -> bytes:
    """Deterministic representation of an event's immutable audit fields."""
    data = {
        "event_id": event.event_id,
        "person_id": event.person_id,
        "category": event.category.value,
        "risk_score": event.risk_score,
        "escalation_layer": event.escalation_layer,
        "adjusted_risk": event.adjusted_risk,
        "description": event.description,
        "ai_action": event.ai_action,
        "reasons": event.reasons,
        "created_at": event.created_at.isoformat(),
        "previous_hash": event.previous_hash,
    }
    return json.dumps(data, sort_keys=True, default=str).encode("utf-8")


def compute_hash(event: CareEvent) -> str:
    return hashlib.sha256(canonical_bytes(event)).hexdigest()


# ---------------------------------------------------------------------------
# Redaction for export
# ---------------------------------------------------------------------------

_PHONE_PATTERN = re.compile(r"\+?\d[\d\s().-]{6,}\d")
_EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")


def redact_text(value: str) -> str:
    """Replace phone numbers and e-mail addresses in free text."""
    value = _PHONE_PATTERN.sub("[REDACTED-PHONE]", value)
    return _EMAIL_PATTERN.sub("[REDACTED-EMAIL]", value)


# ---------------------------------------------------------------------------
# Event log
# ---------------------------------------------------------------------------

class CareEventLog:
    """In-memory, append-only care event log with SHA-256 hash chaining.

    There is no ``delete()``.  Mutating methods only touch the fields listed
    in the module docstring; all reads return deep copies.  A single
    re-entrant lock gives read-your-writes consistency across threads.
    """

    def __init__(self) -> None:
        self._events: list[CareEvent] = []
        self._hashes: list[str] = []
        self._index: dict[str, int] = {}
        self._lock = threading.RLock()

    # -- writes --

    def append(self, event: CareEvent) -> CareEvent:
        """Append a new event and link it into the hash chain.

        Returns:
            A copy of the stored event with ``previous_hash`` populated.
        """
        with self._lock:
            if event.event_id in self._index:
                raise ValueError(f"Event '{event.event_id}' already appended")
            stored = event.model_copy(deep=True)
            stored.previous_hash = self._hashes[-1] if self._hashes else ""
            self._index[stored.event_id] = len(self._events)
            self._events.append(stored)
            self._hashes.append(compute_hash(stored))
            return stored.model_copy(deep=True)

    def record_attempt(self, event_id: str, attempt: ContactAttempt) -> CareEvent:
        with self._lock:
            event = self._get_stored(event_id)
            event.contact_attempts.append(attempt.model_copy(deep=True))
            return event.model_copy(deep=True)

    def record_direct_contact(self, event_id: str) -> CareEvent:
        """Mark that the monitored person was reached for this event.

        Raises:
            ContactAlreadyRecordedError: If already recorded.
        """
        with self._lock:
            event = self._get_stored(event_id)
            if event.ai_contacted_elderly:
                raise ContactAlreadyRecordedError(
                    f"Direct contact already recorded for event '{event_id}'"
                )
            event.ai_contacted_elderly = True
            return event.model_copy(deep=True)

    def record_external_contact(
        self, event_id: str, contact_id: str, method: OutreachChannel
    ) -> CareEvent:
        """Record the trusted-circle notification and mark the event escalated.

        Raises:
            ContactAlreadyRecordedError: If a contact was already recorded.
            InvalidOutcomeTransitionError: If the event can no longer escalate.
        """
        with self._lock:
            event = self._get_stored(event_id)
            if event.external_contact_id is not None:
                raise ContactAlreadyRecordedError(
                    f"External contact already recorded for event '{event_id}'"
                )
            self._validate_transition(event, EventOutcome.ESCALATED)
            event.external_contact_id = contact_id
            event.external_contact_method = method
            event.outcome = EventOutcome.ESCALATED
            return event.model_copy(deep=True)

    def set_outcome(
        self,
        event_id: str,
        outcome: EventOutcome,
        at: Optional[datetime] = None,
    ) -> CareEvent:
        """Reviewer gate: mark an event resolved or a false alarm.

        Raises:
            InvalidOutcomeTransitionError: For disallowed transitions,
                including setting ``escalated`` by hand.
        """
        if outcome == EventOutcome.ESCALATED:
            raise InvalidOutcomeTransitionError(
                "Only the dispatcher can mark an event escalated."
            )
        with self._lock:
            event = self._get_stored(event_id)
            self._validate_transition(event, outcome)
            event.outcome = outcome
            event.resolved_at = at or utc_now()
            logger.info("Event %s outcome set to %s", event_id, outcome.value)
            return event.model_copy(deep=True)

    # -- reads --

    def get(self, event_id: str) -> CareEvent:
        with self._lock:
            return self._get_stored(event_id).model_copy(deep=True)

    def list_for_person(self, person_id: str, limit: Optional[int] = 50) -> list[CareEvent]:
        """Events for a person, newest first."""
        with self._lock:
            events = [e for e in self._events if e.person_id == person_id]
        events.sort(key=lambda e: e.created_at, reverse=True)
        if limit is not None:
            events = events[:limit]
        return [e.model_copy(deep=True) for e in events]

    def count_since(
        self,
        person_id: str,
        since: datetime,
        min_layer: Optional[int] = None,
        outcome: Optional[EventOutcome] = None,
        category: Optional[TriggerCategory] = None,
    ) -> int:
        """Count a person's events created at or after ``since``."""
        with self._lock:
            return sum(
                1
                for e in self._events
                if e.person_id == person_id
                and e.created_at >= since
                and (min_layer is None or e.escalation_layer >= min_layer)
                and (outcome is None or e.outcome == outcome)
                and (category is None or e.category == category)
            )

    def has_event_since(self, person_id: str, since: datetime) -> bool:
        return self.count_since(person_id, since) > 0

    # -- integrity --

    def verify_chain(self) -> tuple[bool, Optional[int]]:
        """Walk the log and validate every hash link.

        Returns:
            ``(valid, broken_at)``; ``broken_at`` is the index of the first
            broken link, or None.
        """
        with self._lock:
            for i, event in enumerate(self._events):
                expected_prev = self._hashes[i - 1] if i > 0 else ""
                if event.previous_hash != expected_prev:
                    return (False, i)
                if self._hashes[i] != compute_hash(event):
                    return (False, i)
            return (True, None)

    def export_for_review(
        self,
        person_id: str,
        time_start: Optional[datetime] = None,
        time_end: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """JSON-serializable, redacted history bundle for a reviewer."""
        events = [
            e
            for e in self.list_for_person(person_id, limit=None)
            if (time_start is None or e.created_at >= time_start)
            and (time_end is None or e.created_at <= time_end)
        ]
        events.reverse()

        exported = []
        for event in events:
            data = event.model_dump(mode="json")
            data["description"] = redact_text(event.description)
            for attempt in data["contact_attempts"]:
                attempt["detail"] = redact_text(attempt["detail"])
            exported.append(data)

        chain_valid, broken_at = self.verify_chain()
        return {
            "export_metadata": {
                "person_id": person_id,
                "exported_at": utc_now().isoformat(),
                "event_count": len(exported),
                "chain_integrity": "VALID" if chain_valid else f"BROKEN_AT_INDEX_{broken_at}",
            },
            "events": exported,
        }

    # -- helpers --

    def _get_stored(self, event_id: str) -> CareEvent:
        idx = self._index.get(event_id)
        if idx is None:
            raise EventNotFoundError(f"No care event '{event_id}'")
        return self._events[idx]

    @staticmethod
    def _validate_transition(event: CareEvent, target: EventOutcome) -> None:
        allowed = _VALID_OUTCOME_TRANSITIONS.get(event.outcome, set())
        if target not in allowed:
            raise InvalidOutcomeTransitionError(
                f"Cannot change outcome from {event.outcome.value} to {target.value}. "
                f"Allowed: {sorted(s.value for s in allowed)}"
            )

    def __len__(self) -> int:
        return len(self._events)
