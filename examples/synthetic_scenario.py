"""
Synthetic Scenario: A Week of Care Signals
==========================================

This script walks through the Care Escalation Engine using entirely
synthetic people and phone numbers.  Calls and messages go to recording
stubs; nothing leaves the process.

Steps demonstrated:
  1. Load people, settings and trusted circles from YAML
  2. A low-risk signal (observed only)
  3. A moderate signal (gentle check-in call)
  4. A suppressed signal inside the cooldown
  5. A critical scam signal (trusted circle notified)
  6. Reviewer marks the event a false alarm
  7. Silence monitor after two quiet days
  8. Decision Transparency Report and redacted export

Usage:
    python -m examples.synthetic_scenario
    # or: python examples/synthetic_scenario.py
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Ensure the project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from careengine.config import load_care_config_from_yaml
from careengine.service import CareService
from careengine.settings import EngineSettings


class _ScenarioClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def _banner(text: str) -> None:
    print(f"\n{'=' * 60}")
    print(f"  {text}")
    print(f"{'=' * 60}\n")


def _show(result) -> None:
    event = result.event
    print(f"  Tier: L{event.escalation_layer}  (adjusted risk: {event.adjusted_risk})")
    print(f"  Action: {event.ai_action}")
    for reason in result.reasons:
        print(f"    - {reason}")


def main() -> None:
    logging.basicConfig(level=logging.WARNING)
    clock = _ScenarioClock()
    service = CareService(engine_settings=EngineSettings(_env_file=None), clock=clock)

    # ------------------------------------------------------------------
    # Step 1: Seed configuration
    # ------------------------------------------------------------------
    _banner("Step 1: Load Synthetic People")

    configs = load_care_config_from_yaml(Path(__file__).parent / "care_config.yaml")
    service.load_people(configs)
    for config in configs:
        print(
            f"{config.person.display_name}: sensitivity={config.settings.sensitivity.value}, "
            f"trusted circle={[c.name for c in config.trusted_circle]}"
        )

    # ------------------------------------------------------------------
    # Step 2: Low-risk signal
    # ------------------------------------------------------------------
    _banner("Step 2: Forgotten Medication Reminder (risk 1)")
    _show(service.submit_signal("p_anna", "medication", 1, description="Skipped one reminder"))

    # ------------------------------------------------------------------
    # Step 3: Moderate signal, a day later
    # ------------------------------------------------------------------
    clock.now += timedelta(days=1)
    _banner("Step 3: Sounded Low on the Morning Call (risk 4)")
    _show(service.submit_signal("p_anna", "emotional", 4, description="Short answers, sighing"))
    print(f"  Calls placed so far: {len(service.telephony.calls)}")

    # ------------------------------------------------------------------
    # Step 4: Inside the cooldown
    # ------------------------------------------------------------------
    clock.now += timedelta(hours=3)
    _banner("Step 4: Same Afternoon (risk 5, inside cooldown)")
    _show(service.submit_signal("p_anna", "emotional", 5))

    # ------------------------------------------------------------------
    # Step 5: Critical signal bypasses the cooldown
    # ------------------------------------------------------------------
    clock.now += timedelta(hours=1)
    _banner("Step 5: Suspicious Bank Call (risk 9)")
    scam = service.submit_signal(
        "p_anna",
        "scam",
        9,
        description="Caller asked for PIN and said to ring back on +31 6 9999 0000",
        ai_action="Caller claimed to be the bank and asked for a PIN",
    )
    _show(scam)
    for message in service.messaging.messages:
        print(f"  Message via {message.channel.value}: {message.body}")

    # ------------------------------------------------------------------
    # Step 6: Reviewer feedback
    # ------------------------------------------------------------------
    clock.now += timedelta(hours=2)
    _banner("Step 6: Family Confirms It Was a False Alarm")
    reviewed = service.record_outcome(scam.event.event_id, "false_alarm")
    print(f"  Outcome: {reviewed.outcome.value}  (tier still L{reviewed.escalation_layer})")

    # ------------------------------------------------------------------
    # Step 7: Silence monitor
    # ------------------------------------------------------------------
    _banner("Step 7: Bram Has Been Quiet")
    service.wellbeing.record_interaction("p_bram", clock.now)
    service.baseline_updater.run()
    clock.now += timedelta(hours=60)
    report = service.silence_monitor.run()
    print(f"  Silence signals submitted for: {report.fired}")
    for event in service.list_events("p_bram"):
        print(f"  L{event.escalation_layer} {event.category.value}: {event.description}")

    # ------------------------------------------------------------------
    # Step 8: Reports
    # ------------------------------------------------------------------
    _banner("Step 8: Decision Transparency Report")
    print(json.dumps(service.event_report(scam.event.event_id).to_dict(), indent=2))

    _banner("Redacted Export for Review")
    export = service.export_events("p_anna")
    print(json.dumps(export["export_metadata"], indent=2))
    print(f"  Scam description: {export['events'][-1]['description']}")

    service.close()


if __name__ == "__main__":
    main()
