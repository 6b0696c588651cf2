"""
Tests for careengine.transparency_report -- Decision Transparency Reports.
"""

from datetime import datetime, timedelta, timezone

from careengine.models import (
    CareEvent,
    ContactAttempt,
    ContactKind,
    EventOutcome,
    OutreachChannel,
    TriggerCategory,
)
from careengine.transparency_report import generate_transparency_report

from conftest import add_contact, enroll

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def _make_event(**kwargs) -> CareEvent:
    defaults = {
        "person_id": "p_anna",
        "category": TriggerCategory.SCAM,
        "risk_score": 9,
        "escalation_layer": 4,
        "adjusted_risk": 10,
        "ai_action": "Critical safeguard, contacting the trusted circle",
        "reasons": ["Adjusted risk 10 (raw 9) maps to tier 4."],
        "created_at": T0,
    }
    defaults.update(kwargs)
    return CareEvent(**defaults)


class TestTransparencyReport:
    def test_report_contains_required_fields(self):
        event = _make_event()
        d = generate_transparency_report(event).to_dict()
        assert d["event_id"] == event.event_id
        assert d["person_id"] == "p_anna"
        assert d["category"] == "scam"
        assert d["escalation_layer"] == 4
        assert d["layer_name"] == "Critical safeguard"
        assert d["outcome"] == "pending"
        assert d["report_type"] == "Care Decision Transparency Report"

    def test_reasoning_chain_uses_event_reasons(self):
        report = generate_transparency_report(_make_event())
        assert report.reasoning_chain == ["Adjusted risk 10 (raw 9) maps to tier 4."]

    def test_reasoning_chain_falls_back_to_action(self):
        report = generate_transparency_report(_make_event(reasons=[]))
        assert report.reasoning_chain == ["Critical safeguard, contacting the trusted circle"]

    def test_timeline_orders_attempts_and_outcome(self):
        event = _make_event(
            contact_attempts=[
                ContactAttempt(
                    kind=ContactKind.TRUSTED_CIRCLE,
                    channel=OutreachChannel.SMS,
                    target_id="c_1",
                    succeeded=True,
                    attempted_at=T0 + timedelta(seconds=20),
                ),
                ContactAttempt(
                    kind=ContactKind.DIRECT,
                    channel=OutreachChannel.CALL,
                    target_id="p_anna",
                    succeeded=False,
                    attempted_at=T0 + timedelta(seconds=10),
                ),
            ],
            outcome=EventOutcome.RESOLVED,
            resolved_at=T0 + timedelta(hours=1),
        )

        steps = [entry["step"] for entry in generate_transparency_report(event).timeline]
        assert steps == ["EVALUATED", "DIRECT_CONTACT", "TRUSTED_CIRCLE", "RESOLVED"]

    def test_attempt_details_are_redacted(self):
        event = _make_event(contact_attempts=[
            ContactAttempt(kind=ContactKind.DIRECT, detail="Dialled +31 6 1234 5678, no answer"),
        ])
        description = generate_transparency_report(event).timeline[1]["description"]
        assert "1234" not in description
        assert "[REDACTED-PHONE]" in description

    def test_report_through_service(self, service):
        enroll(service)
        add_contact(service)
        result = service.submit_signal("p_anna", "scam", 9)

        report = service.event_report(result.event.event_id)

        assert report.outcome == "escalated"
        assert [e["step"] for e in report.timeline] == [
            "EVALUATED", "DIRECT_CONTACT", "TRUSTED_CIRCLE",
        ]
