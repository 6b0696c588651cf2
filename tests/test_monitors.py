"""
Tests for careengine.monitors -- Silence Monitor and Baseline Updater.

Covers: synthetic silence risk, when the silence monitor fires and when it
stays quiet, idempotence across repeated ticks, per-person failure
isolation, and baseline refresh.
"""

from __future__ import annotations

import threading
import time
from datetime import timedelta

import pytest

from careengine.baseline import BaselineStore
from careengine.models import BehavioralBaseline, TriggerCategory, WellbeingLog
from careengine.monitors import BaselineUpdater, SilenceMonitor, silence_risk_score
from careengine.templates import PERSON_MESSAGES
from careengine.wellbeing import InMemoryWellbeingSource

from conftest import enroll


def _set_last_interaction(service, clock, hours_ago, person_id="p_anna"):
    service.baseline_store.upsert(BehavioralBaseline(
        person_id=person_id,
        last_interaction=clock.now - timedelta(hours=hours_ago),
    ))


class TestSilenceRiskScore:
    @pytest.mark.parametrize(
        "hours, window, expected",
        [(72, 48, 8), (49, 48, 5), (60, 48, 6), (500, 48, 10), (1, 48, 1), (36, 24, 8)],
    )
    def test_risk_grows_with_silence(self, hours, window, expected):
        assert silence_risk_score(hours, window) == expected


# ---------------------------------------------------------------------------
# 1. Silence monitor
# ---------------------------------------------------------------------------

class TestSilenceMonitor:
    def test_fires_after_window(self, service, clock):
        enroll(service)
        _set_last_interaction(service, clock, hours_ago=60)

        report = service.silence_monitor.run()

        assert report.fired == ["p_anna"]
        events = service.list_events("p_anna")
        assert len(events) == 1
        assert events[0].category == TriggerCategory.SILENCE
        assert events[0].risk_score == 6
        assert events[0].escalation_layer == 2
        assert service.telephony.calls[0].script_message == PERSON_MESSAGES[TriggerCategory.SILENCE]

    def test_exactly_at_window_does_not_fire(self, service, clock):
        enroll(service)
        _set_last_interaction(service, clock, hours_ago=48)

        report = service.silence_monitor.run()

        assert report.skipped == ["p_anna"]
        assert len(service.event_log) == 0

    def test_no_interaction_data_never_fires(self, service, clock):
        enroll(service)
        service.baseline_store.upsert(BehavioralBaseline(person_id="p_anna"))
        enroll(service, person_id="p_bram", display_name="Bram")

        report = service.silence_monitor.run()

        assert sorted(report.skipped) == ["p_anna", "p_bram"]
        assert len(service.event_log) == 0

    def test_disabled_people_are_not_checked(self, service, clock):
        enroll(service, care_enabled=False)
        _set_last_interaction(service, clock, hours_ago=200)

        report = service.silence_monitor.run()

        assert report.processed == []
        assert len(service.event_log) == 0

    def test_repeated_ticks_produce_one_action(self, service, clock):
        enroll(service)
        _set_last_interaction(service, clock, hours_ago=60)

        service.silence_monitor.run()
        service.silence_monitor.run()

        layers = [e.escalation_layer for e in service.list_events("p_anna")]
        assert sum(1 for layer in layers if layer >= 1) == 1
        assert len(service.telephony.calls) == 1

    def test_critical_silence_is_not_repeated_within_cooldown(self, service, clock):
        enroll(service)
        _set_last_interaction(service, clock, hours_ago=100)

        first = service.silence_monitor.run()
        clock.advance(minutes=30)
        second = service.silence_monitor.run()

        assert first.fired == ["p_anna"]
        assert second.skipped == ["p_anna"]
        events = service.list_events("p_anna")
        assert len(events) == 1
        assert events[0].escalation_layer == 4

    def test_critical_silence_fires_again_after_cooldown(self, service, clock):
        enroll(service, escalation_cooldown_hours=2)
        _set_last_interaction(service, clock, hours_ago=100)

        service.silence_monitor.run()
        clock.advance(hours=3)
        report = service.silence_monitor.run()

        assert report.fired == ["p_anna"]
        assert len(service.event_log) == 2

    def test_overlapping_checks_fire_critical_silence_once(self, service, clock):
        enroll(service)
        _set_last_interaction(service, clock, hours_ago=100)
        settings = service.get_settings("p_anna")
        fired = []

        def check():
            fired.append(service.silence_monitor.check_person(settings))

        lock = service.evaluator.locks.lock_for("p_anna")
        with lock:
            threads = [threading.Thread(target=check) for _ in range(2)]
            for t in threads:
                t.start()
            time.sleep(0.2)
        for t in threads:
            t.join(10)

        assert sorted(fired) == [False, True]
        events = service.list_events("p_anna")
        assert len(events) == 1
        assert events[0].escalation_layer == 4

    def test_failure_for_one_person_does_not_stop_others(self, service, clock):
        class _FlakyBaselines(BaselineStore):
            def get(self, person_id):
                if person_id == "p_broken":
                    raise RuntimeError("row unreadable")
                return super().get(person_id)

        baselines = _FlakyBaselines()
        enroll(service, person_id="p_anna")
        enroll(service, person_id="p_broken", display_name="Broken")
        baselines.upsert(BehavioralBaseline(
            person_id="p_anna", last_interaction=clock.now - timedelta(hours=60)
        ))
        monitor = SilenceMonitor(
            settings_store=service.settings_store,
            baseline_store=baselines,
            event_log=service.event_log,
            evaluator=service.evaluator,
            clock=clock,
        )

        report = monitor.run()

        assert report.fired == ["p_anna"]
        assert "RuntimeError" in report.failed["p_broken"]
        assert report.finished_at is not None


# ---------------------------------------------------------------------------
# 2. Baseline updater
# ---------------------------------------------------------------------------

class TestBaselineUpdater:
    def test_refreshes_every_registered_person(self, service, clock):
        enroll(service, person_id="p_anna")
        enroll(service, person_id="p_bram", display_name="Bram", care_enabled=False)
        service.wellbeing.add_log(WellbeingLog(
            person_id="p_anna",
            log_date=(clock.now - timedelta(days=1)).date(),
            mood_score=4,
            conversation_count=3,
            conversation_minutes=25,
            created_at=clock.now - timedelta(days=1),
        ))
        service.wellbeing.record_interaction("p_anna", clock.now - timedelta(hours=2))

        report = service.baseline_updater.run()

        assert sorted(report.fired) == ["p_anna", "p_bram"]
        anna = service.get_baseline("p_anna")
        assert anna.avg_mood_score == 80.0
        assert anna.avg_daily_conversations == 3.0
        assert anna.last_interaction == clock.now - timedelta(hours=2)
        assert service.get_baseline("p_bram").log_count == 0

    def test_logs_outside_window_are_ignored(self, service, clock):
        enroll(service)
        service.wellbeing.add_log(WellbeingLog(
            person_id="p_anna",
            log_date=(clock.now - timedelta(days=45)).date(),
            mood_score=1,
            created_at=clock.now - timedelta(days=45),
        ))

        service.baseline_updater.run()
        assert service.get_baseline("p_anna").log_count == 0

    def test_failure_for_one_person_does_not_stop_others(self, service, clock):
        class _FlakySource(InMemoryWellbeingSource):
            def wellbeing_logs(self, person_id, since):
                if person_id == "p_broken":
                    raise ConnectionError("memory store offline")
                return super().wellbeing_logs(person_id, since)

        enroll(service, person_id="p_anna")
        enroll(service, person_id="p_broken", display_name="Broken")
        updater = BaselineUpdater(
            directory=service.directory,
            wellbeing=_FlakySource(),
            baseline_store=service.baseline_store,
            clock=clock,
        )

        report = updater.run()

        assert report.fired == ["p_anna"]
        assert "ConnectionError" in report.failed["p_broken"]
        assert service.get_baseline("p_broken") is None

    def test_hung_source_is_abandoned_and_reported(self, service, clock):
        class _HangingSource(InMemoryWellbeingSource):
            def __init__(self):
                super().__init__()
                self.release = threading.Event()

            def last_interaction(self, person_id):
                if person_id == "p_slow":
                    self.release.wait(5)
                return super().last_interaction(person_id)

        enroll(service, person_id="p_slow", display_name="Slow")
        enroll(service, person_id="p_fast", display_name="Fast")
        source = _HangingSource()
        updater = BaselineUpdater(
            directory=service.directory,
            wellbeing=source,
            baseline_store=service.baseline_store,
            clock=clock,
            call_timeout_seconds=0.1,
        )

        started = time.monotonic()
        try:
            report = updater.run()
        finally:
            source.release.set()
            updater.close()

        assert time.monotonic() - started < 2
        assert report.fired == ["p_fast"]
        assert "timed out" in report.failed["p_slow"]
        assert service.get_baseline("p_slow") is None

    def test_refresh_feeds_silence_monitor(self, service, clock):
        enroll(service)
        service.wellbeing.record_interaction("p_anna", clock.now - timedelta(hours=72))

        service.baseline_updater.run()
        report = service.silence_monitor.run()

        assert report.fired == ["p_anna"]
        assert service.list_events("p_anna")[0].risk_score == 8
