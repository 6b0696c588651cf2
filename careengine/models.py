"""
Core data models for the Care Escalation Engine.

The engine never diagnoses.  A ``CareSignal`` arrives already scored by an
upstream producer (voice agent, app hooks, silence monitor); the models in
this module carry that score through evaluation, the escalation decision,
and every contact attempt made on the monitored person's behalf.

``escalation_layer`` runs from 0 (observe only) to 4 (notify the trusted
circle).  Once a ``CareEvent`` has been appended to the event log its
category, risk score and layer are part of the audit trail and never change.
"""

from __future__ import annotations

import enum
import math
import uuid
from datetime import date, datetime, timezone
from typing import Callable, Optional

from pydantic import BaseModel, Field, field_validator


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default engine clock."""
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class StoreError(Exception):
    """Raised by a store when the underlying datastore cannot be read or written."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TriggerCategory(str, enum.Enum):
    """Signal categories produced upstream."""

    COGNITIVE_DRIFT = "cognitive_drift"
    EMOTIONAL = "emotional"
    SCAM = "scam"
    SILENCE = "silence"
    MEDICATION = "medication"
    HELP_REQUEST = "help_request"
    ENVIRONMENTAL = "environmental"


class Sensitivity(str, enum.Enum):
    """How eagerly the engine escalates for a given person.

    * ``CONSERVATIVE`` -- scales risk down and raises every tier threshold.
    * ``BALANCED``     -- no adjustment.
    * ``PROTECTIVE``   -- scales risk up and lowers every tier threshold.
    """

    CONSERVATIVE = "conservative"
    BALANCED = "balanced"
    PROTECTIVE = "protective"


class ScamThreshold(str, enum.Enum):
    """Scam detection threshold, consumed upstream by the signal producer."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class OutreachChannel(str, enum.Enum):
    """Channels a trusted contact can be reached on.

    ``CALL`` is accepted in a contact's preferences but only ``WHATSAPP`` and
    ``SMS`` are used for trusted-circle notification.
    """

    CALL = "call"
    WHATSAPP = "whatsapp"
    SMS = "sms"


MESSAGE_CHANNELS: frozenset[OutreachChannel] = frozenset(
    {OutreachChannel.WHATSAPP, OutreachChannel.SMS}
)


class EventOutcome(str, enum.Enum):
    """Lifecycle outcome of a care event.

    ``ESCALATED`` is set by the dispatcher once the trusted circle has been
    messaged; ``RESOLVED`` and ``FALSE_ALARM`` are set by a human reviewer.
    """

    PENDING = "pending"
    RESOLVED = "resolved"
    FALSE_ALARM = "false_alarm"
    ESCALATED = "escalated"


class ContactKind(str, enum.Enum):
    DIRECT = "direct"
    TRUSTED_CIRCLE = "trusted_circle"


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------

class MonitoredPerson(BaseModel):
    """The person whose wellbeing is being monitored."""

    person_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Unique identifier for the monitored person.",
    )
    display_name: str = Field(
        default="",
        description="Name used in messages to the trusted circle.",
    )
    phone_number: Optional[str] = Field(
        default=None,
        description="Number used for direct advisory calls.  Never logged.",
    )
    enrolled_at: datetime = Field(default_factory=utc_now)


class CareSignal(BaseModel):
    """A scored wellbeing signal submitted to the evaluator.

    ``risk_score`` is clamped into [1, 10] rather than rejected, so a
    misbehaving producer can never make a genuine concern disappear.
    """

    person_id: str = Field(..., min_length=1)
    category: TriggerCategory
    risk_score: int = Field(
        ...,
        ge=1,
        le=10,
        description="Raw risk as judged upstream (1=minimal, 10=critical).",
    )
    description: str = Field(default="")
    ai_action: Optional[str] = Field(
        default=None,
        description="Optional rationale supplied by the producer.",
    )

    @field_validator("risk_score", mode="before")
    @classmethod
    def clamp_risk_score(cls, v):
        if isinstance(v, bool):
            raise ValueError("risk_score must be numeric")
        if isinstance(v, str):
            v = float(v)
        if not isinstance(v, (int, float)):
            raise ValueError(f"risk_score must be numeric, got {type(v).__name__}")
        if isinstance(v, float):
            if not math.isfinite(v):
                raise ValueError("risk_score must be finite")
            v = int(v + 0.5) if v >= 0 else int(v)
        return max(1, min(10, v))


class ContactAttempt(BaseModel):
    """One attempt to reach the monitored person or a trusted contact."""

    kind: ContactKind
    channel: Optional[OutreachChannel] = None
    target_id: Optional[str] = Field(
        default=None,
        description="person_id for direct contact, contact_id for the trusted circle.",
    )
    succeeded: bool = False
    detail: str = ""
    attempted_at: datetime = Field(default_factory=utc_now)


class CareEvent(BaseModel):
    """A single evaluated signal and the action taken on it."""

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    person_id: str
    category: TriggerCategory
    risk_score: int = Field(..., ge=1, le=10)
    escalation_layer: int = Field(..., ge=0, le=4)
    adjusted_risk: Optional[int] = Field(
        default=None,
        description="Risk after category and sensitivity scaling; None when never computed.",
    )
    description: str = ""
    ai_action: str = Field(
        default="",
        description="Human-readable rationale for the decision.",
    )
    reasons: list[str] = Field(default_factory=list)
    ai_contacted_elderly: bool = False
    external_contact_id: Optional[str] = None
    external_contact_method: Optional[OutreachChannel] = None
    outcome: EventOutcome = EventOutcome.PENDING
    contact_attempts: list[ContactAttempt] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    resolved_at: Optional[datetime] = None
    previous_hash: str = Field(
        default="",
        description="Hash of the previous event's audit record in the log.",
    )


class EscalationDecision(BaseModel):
    """What the evaluator decided for one signal, handed to the dispatcher."""

    layer: int = Field(..., ge=0, le=4)
    adjusted_risk: Optional[int] = None
    at_cap: bool = False
    notify_circle: bool = Field(
        default=False,
        description="Tier 4, or tier 3 with critical raw risk: the trusted circle is in scope.",
    )
    contact_person_first: bool = True
    action: str = ""
    reasons: list[str] = Field(default_factory=list)


class TrustedContact(BaseModel):
    """A person in the monitored person's trusted circle."""

    contact_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    person_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    phone_number: str = Field(..., min_length=1)
    role: str = Field(default="family", description="family, caretaker, neighbor or friend.")
    priority_order: int = Field(default=1, ge=1, description="Lower is contacted first.")
    may_receive_scam_alerts: bool = True
    may_receive_emotional_alerts: bool = True
    may_receive_silence_alerts: bool = True
    may_receive_cognitive_alerts: bool = True
    may_receive_routine_alerts: bool = True
    outreach_methods: list[OutreachChannel] = Field(
        default_factory=lambda: [OutreachChannel.CALL, OutreachChannel.WHATSAPP],
    )
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now)

    def is_eligible_for(self, category: TriggerCategory) -> bool:
        """Whether this contact has opted in to alerts for ``category``."""
        if category == TriggerCategory.HELP_REQUEST:
            return True
        flag = _ELIGIBILITY_FLAGS[category]
        return bool(getattr(self, flag))


_ELIGIBILITY_FLAGS: dict[TriggerCategory, str] = {
    TriggerCategory.SCAM: "may_receive_scam_alerts",
    TriggerCategory.EMOTIONAL: "may_receive_emotional_alerts",
    TriggerCategory.SILENCE: "may_receive_silence_alerts",
    TriggerCategory.COGNITIVE_DRIFT: "may_receive_cognitive_alerts",
    TriggerCategory.ENVIRONMENTAL: "may_receive_cognitive_alerts",
    TriggerCategory.MEDICATION: "may_receive_routine_alerts",
}


class WellbeingLog(BaseModel):
    """A daily wellbeing summary from the conversational memory feed."""

    person_id: str
    log_date: date
    mood_score: Optional[float] = Field(default=None, ge=0, le=5)
    conversation_count: int = Field(default=0, ge=0)
    conversation_minutes: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utc_now)


class BehavioralBaseline(BaseModel):
    """Rolling behavioral averages for one person.

    ``last_interaction`` is None until the person has had a conversation;
    the silence monitor never fires for such a person.
    """

    person_id: str
    avg_daily_conversations: float = 0.0
    avg_mood_score: float = Field(default=0.0, ge=0, le=100)
    avg_conversation_minutes: float = 0.0
    last_interaction: Optional[datetime] = None
    log_count: int = 0
    updated_at: datetime = Field(default_factory=utc_now)
