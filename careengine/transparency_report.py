"""
Decision Transparency Report Generator.

Explains a single care event to a human reviewer: which tier was chosen and
why, which suppression rules fired, and who was contacted when, over which
channel, with what result.  The report is what a family member sees when
they ask "why did I get this message?" -- or "why didn't I?".
"""

from __future__ import annotations

from typing import Any, Optional

from careengine.event_log import redact_text
from careengine.models import CareEvent, ContactKind, utc_now

_LAYER_NAMES = {
    0: "Observe only",
    1: "Gentle clarification",
    2: "Confirmed outreach",
    3: "Soft protective",
    4: "Critical safeguard",
}


class TransparencyReport:
    """A structured decision report for one care event."""

    def __init__(
        self,
        event_id: str,
        person_id: str,
        category: str,
        risk_score: int,
        adjusted_risk: Optional[int],
        escalation_layer: int,
        outcome: str,
        action: str,
        reasoning_chain: list[str],
        timeline: list[dict[str, str]],
        generated_at: str,
    ) -> None:
        self.event_id = event_id
        self.person_id = person_id
        self.category = category
        self.risk_score = risk_score
        self.adjusted_risk = adjusted_risk
        self.escalation_layer = escalation_layer
        self.outcome = outcome
        self.action = action
        self.reasoning_chain = reasoning_chain
        self.timeline = timeline
        self.generated_at = generated_at

    @property
    def layer_name(self) -> str:
        return _LAYER_NAMES.get(self.escalation_layer, "Unknown")

    def to_dict(self) -> dict[str, Any]:
        """Serialize the report to a dictionary."""
        return {
            "report_type": "Care Decision Transparency Report",
            "event_id": self.event_id,
            "person_id": self.person_id,
            "category": self.category,
            "risk_score": self.risk_score,
            "adjusted_risk": self.adjusted_risk,
            "escalation_layer": self.escalation_layer,
            "layer_name": self.layer_name,
            "outcome": self.outcome,
            "action": self.action,
            "reasoning_chain": self.reasoning_chain,
            "timeline": self.timeline,
            "generated_at": self.generated_at,
        }

    def __repr__(self) -> str:
        return (
            f"TransparencyReport(event_id={self.event_id}, "
            f"layer={self.escalation_layer}, outcome={self.outcome})"
        )


def generate_transparency_report(event: CareEvent) -> TransparencyReport:
    """Build a decision report from a recorded care event."""
    return TransparencyReport(
        event_id=event.event_id,
        person_id=event.person_id,
        category=event.category.value,
        risk_score=event.risk_score,
        adjusted_risk=event.adjusted_risk,
        escalation_layer=event.escalation_layer,
        outcome=event.outcome.value,
        action=event.ai_action,
        reasoning_chain=list(event.reasons) or [event.ai_action],
        timeline=_build_timeline(event),
        generated_at=utc_now().isoformat(),
    )


def _build_timeline(event: CareEvent) -> list[dict[str, str]]:
    """Chronological list of what happened to the event."""
    entries: list[dict[str, str]] = [{
        "step": "EVALUATED",
        "timestamp": event.created_at.isoformat(),
        "description": f"Signal recorded at tier {event.escalation_layer}: {event.ai_action}.",
    }]

    for attempt in sorted(event.contact_attempts, key=lambda a: a.attempted_at):
        if attempt.kind == ContactKind.DIRECT:
            step = "DIRECT_CONTACT"
            who = "monitored person"
        else:
            step = "TRUSTED_CIRCLE"
            who = f"contact {attempt.target_id}" if attempt.target_id else "trusted circle"
        channel = f" via {attempt.channel.value}" if attempt.channel else ""
        status = "succeeded" if attempt.succeeded else "did not succeed"
        entries.append({
            "step": step,
            "timestamp": attempt.attempted_at.isoformat(),
            "description": f"Contact with {who}{channel} {status}. {redact_text(attempt.detail)}",
        })

    if event.resolved_at:
        entries.append({
            "step": event.outcome.value.upper(),
            "timestamp": event.resolved_at.isoformat(),
            "description": f"Reviewer marked the event {event.outcome.value}.",
        })

    return entries
