"""
Care Service -- the engine's exposed interface.

A thin facade for the route layer: one operation to submit a signal, plus
pass-through reads and edits of settings, the trusted circle, event history
and baselines.  It holds no business logic of its own beyond wiring the
components together.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from careengine.baseline import BaselineStore
from careengine.channels import (
    MessagingGateway,
    RecordingMessagingGateway,
    RecordingTelephony,
    TelephonyDispatch,
)
from careengine.config import CareSettings, PersonConfig, SettingsStore
from careengine.dispatcher import ContactDispatcher
from careengine.event_log import CareEventLog
from careengine.models import (
    BehavioralBaseline,
    CareEvent,
    CareSignal,
    Clock,
    EventOutcome,
    TriggerCategory,
    TrustedContact,
    utc_now,
)
from careengine.monitors import BaselineUpdater, SilenceMonitor
from careengine.people import PersonDirectory
from careengine.scheduler import MonitorScheduler, PeriodicJob
from careengine.settings import EngineSettings
from careengine.signal_evaluator import SignalEvaluationResult, SignalEvaluator
from careengine.transparency_report import TransparencyReport, generate_transparency_report
from careengine.trusted_circle import TrustedCircleRegistry
from careengine.wellbeing import InMemoryWellbeingSource, WellbeingSource

logger = logging.getLogger(__name__)


class CareService:
    """Wires the stores, evaluator, dispatcher and monitors together.

    Every collaborator can be injected; anything left out gets the
    in-process default (in-memory stores, recording stubs for channels).
    """

    def __init__(
        self,
        engine_settings: Optional[EngineSettings] = None,
        telephony: Optional[TelephonyDispatch] = None,
        messaging: Optional[MessagingGateway] = None,
        wellbeing: Optional[WellbeingSource] = None,
        settings_store: Optional[SettingsStore] = None,
        event_log: Optional[CareEventLog] = None,
        trusted_circle: Optional[TrustedCircleRegistry] = None,
        directory: Optional[PersonDirectory] = None,
        baseline_store: Optional[BaselineStore] = None,
        clock: Clock = utc_now,
    ) -> None:
        self.engine_settings = engine_settings or EngineSettings()
        self.telephony = telephony or RecordingTelephony()
        self.messaging = messaging or RecordingMessagingGateway()
        self.wellbeing = wellbeing or InMemoryWellbeingSource()
        self.settings_store = settings_store or SettingsStore()
        self.event_log = event_log or CareEventLog()
        self.trusted_circle = trusted_circle or TrustedCircleRegistry()
        self.directory = directory or PersonDirectory()
        self.baseline_store = baseline_store or BaselineStore()
        self.clock = clock

        self.dispatcher = ContactDispatcher(
            event_log=self.event_log,
            trusted_circle=self.trusted_circle,
            directory=self.directory,
            telephony=self.telephony,
            messaging=self.messaging,
            call_timeout_seconds=self.engine_settings.call_timeout_seconds,
            clock=clock,
        )
        self.evaluator = SignalEvaluator(
            settings_store=self.settings_store,
            event_log=self.event_log,
            dispatcher=self.dispatcher,
            clock=clock,
        )
        self.silence_monitor = SilenceMonitor(
            settings_store=self.settings_store,
            baseline_store=self.baseline_store,
            event_log=self.event_log,
            evaluator=self.evaluator,
            clock=clock,
            max_workers=self.engine_settings.monitor_max_workers,
        )
        self.baseline_updater = BaselineUpdater(
            directory=self.directory,
            wellbeing=self.wellbeing,
            baseline_store=self.baseline_store,
            clock=clock,
            window_days=self.engine_settings.wellbeing_window_days,
            max_workers=self.engine_settings.monitor_max_workers,
            call_timeout_seconds=self.engine_settings.call_timeout_seconds,
        )

    # -- seeding --

    def load_people(self, configs: list[PersonConfig]) -> None:
        """Register people, settings and trusted circles from seed config."""
        for config in configs:
            self.directory.register(config.person)
            self.settings_store.upsert(config.settings)
            for contact in config.trusted_circle:
                self.trusted_circle.add(contact)
        logger.info("Loaded %d monitored people", len(configs))

    # -- signals --

    def submit_signal(
        self,
        person_id: str,
        category: TriggerCategory | str,
        risk_score: int | float,
        description: str = "",
        ai_action: Optional[str] = None,
    ) -> SignalEvaluationResult:
        """Evaluate a signal from an upstream producer.

        Raises:
            pydantic.ValidationError: If the signal is malformed (unknown
                category, empty person id).  Out-of-range risk is clamped.
        """
        signal = CareSignal(
            person_id=person_id,
            category=category,
            risk_score=risk_score,
            description=description,
            ai_action=ai_action,
        )
        return self.evaluator.evaluate(signal)

    # -- settings --

    def get_settings(self, person_id: str) -> CareSettings:
        return self.settings_store.get_or_create(person_id)

    def update_settings(self, person_id: str, **changes: Any) -> CareSettings:
        return self.settings_store.update(person_id, **changes)

    # -- trusted circle --

    def list_trusted_circle(self, person_id: str) -> list[TrustedContact]:
        return self.trusted_circle.list_for_person(person_id)

    def add_trusted_contact(self, contact: TrustedContact) -> TrustedContact:
        return self.trusted_circle.add(contact)

    def update_trusted_contact(self, contact_id: str, **changes: Any) -> TrustedContact:
        return self.trusted_circle.update(contact_id, **changes)

    def remove_trusted_contact(self, contact_id: str) -> None:
        self.trusted_circle.remove(contact_id)

    # -- events --

    def list_events(self, person_id: str, limit: int = 50) -> list[CareEvent]:
        return self.event_log.list_for_person(person_id, limit=limit)

    def get_event(self, event_id: str) -> CareEvent:
        return self.event_log.get(event_id)

    def record_outcome(self, event_id: str, outcome: EventOutcome | str) -> CareEvent:
        """Reviewer feedback: mark an event resolved or a false alarm."""
        return self.event_log.set_outcome(event_id, EventOutcome(outcome), at=self.clock())

    def event_report(self, event_id: str) -> TransparencyReport:
        return generate_transparency_report(self.event_log.get(event_id))

    def export_events(self, person_id: str) -> dict[str, Any]:
        return self.event_log.export_for_review(person_id)

    # -- baseline --

    def get_baseline(self, person_id: str) -> Optional[BehavioralBaseline]:
        return self.baseline_store.get(person_id)

    # -- monitors --

    def build_scheduler(self) -> MonitorScheduler:
        """Scheduler running the silence monitor and baseline updater."""
        return MonitorScheduler(jobs=[
            PeriodicJob(
                "baseline-updater",
                self.engine_settings.baseline_refresh_interval_seconds,
                self.baseline_updater.run,
            ),
            PeriodicJob(
                "silence-monitor",
                self.engine_settings.silence_check_interval_seconds,
                self.silence_monitor.run,
            ),
        ])

    def close(self) -> None:
        self.dispatcher.close()
        self.baseline_updater.close()
