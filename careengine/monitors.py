"""
Periodic Monitors -- Silence Detection and Baseline Refresh.

Both monitors process every relevant person independently on a bounded
worker pool, so one slow or failing person cannot hold up the rest of a
tick.  A failure for one person is logged and reported in the
``MonitorRunReport``; the loop always continues.

**Silence monitor:**  when a person with care enabled has not interacted for
longer than their silence window, a synthetic ``silence`` signal is fed into
the same evaluator every other signal goes through.  Its risk grows with the
length of the silence: ``min(10, round(hours / window x 5))``.  Repeated
ticks are idempotent in effect -- the cooldown suppresses later signals, and
when the synthetic risk is high enough to bypass the cooldown the person is
skipped while an actionable silence event is already inside that window.

**Baseline updater:**  recomputes every person's baseline from the trailing
wellbeing window and the most recent interaction.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional

from pydantic import BaseModel, Field

from careengine.baseline import BaselineStore, compute_baseline
from careengine.config import CareSettings, SettingsStore
from careengine.event_log import CareEventLog
from careengine.models import CareSignal, Clock, TriggerCategory, utc_now
from careengine.people import PersonDirectory
from careengine.signal_evaluator import (
    CRITICAL_RISK,
    MAX_RISK,
    SignalEvaluator,
    round_half_up,
)
from careengine.wellbeing import WellbeingSource

logger = logging.getLogger(__name__)

SILENCE_RISK_SCALE = 5


class MonitorRunReport(BaseModel):
    """Summary of one monitor run."""

    monitor: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    processed: list[str] = Field(default_factory=list)
    fired: list[str] = Field(
        default_factory=list,
        description="Silence: people a signal was submitted for.  Baseline: people updated.",
    )
    skipped: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)


def silence_risk_score(hours_since: float, window_hours: int) -> int:
    """Synthetic risk for a silence of ``hours_since`` hours."""
    ratio = Decimal(str(hours_since)) / Decimal(window_hours)
    return max(1, min(MAX_RISK, round_half_up(ratio * SILENCE_RISK_SCALE)))


def _fan_out(
    person_ids: Iterable[str],
    work: Callable[[str], bool],
    report: MonitorRunReport,
    max_workers: int,
) -> None:
    """Run ``work`` per person on a bounded pool, isolating failures."""
    person_ids = list(person_ids)
    if not person_ids:
        return
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=report.monitor) as pool:
        futures = {pid: pool.submit(work, pid) for pid in person_ids}
        for pid, future in futures.items():
            report.processed.append(pid)
            try:
                acted = future.result()
            except Exception as exc:
                logger.error(
                    "[%s] Error processing %s: %s", report.monitor, pid, exc, exc_info=exc
                )
                report.failed[pid] = f"{type(exc).__name__}: {exc}"
                continue
            if acted:
                report.fired.append(pid)
            else:
                report.skipped.append(pid)


class SilenceMonitor:
    """Detects prolonged inactivity and injects synthetic silence signals."""

    def __init__(
        self,
        settings_store: SettingsStore,
        baseline_store: BaselineStore,
        event_log: CareEventLog,
        evaluator: SignalEvaluator,
        clock: Clock = utc_now,
        max_workers: int = 8,
    ) -> None:
        self._settings_store = settings_store
        self._baseline_store = baseline_store
        self._event_log = event_log
        self._evaluator = evaluator
        self._clock = clock
        self._max_workers = max_workers

    def run(self) -> MonitorRunReport:
        report = MonitorRunReport(monitor="silence-monitor", started_at=self._clock())
        enabled = {s.person_id: s for s in self._settings_store.list_enabled()}
        _fan_out(
            enabled.keys(),
            lambda pid: self.check_person(enabled[pid]),
            report,
            self._max_workers,
        )
        report.finished_at = self._clock()
        logger.info(
            "[SilenceMonitor] %d checked, %d signalled, %d failed",
            len(report.processed),
            len(report.fired),
            len(report.failed),
        )
        return report

    def check_person(self, settings: CareSettings) -> bool:
        """Submit a silence signal for one person if they have gone quiet.

        Returns:
            True if a signal was submitted.
        """
        baseline = self._baseline_store.get(settings.person_id)
        if baseline is None or baseline.last_interaction is None:
            return False

        now = self._clock()
        hours_since = (now - baseline.last_interaction).total_seconds() / 3600
        if hours_since <= settings.silence_window_hours:
            return False

        risk = silence_risk_score(hours_since, settings.silence_window_hours)

        # Held across the check and the evaluation so overlapping runs cannot
        # both pass the check.
        with self._evaluator.locks.lock_for(settings.person_id):
            if risk >= CRITICAL_RISK and self._already_escalated(settings, now):
                logger.info(
                    "[SilenceMonitor] %s silence already escalated within cooldown; skipping",
                    settings.person_id,
                )
                return False

            logger.info(
                "[SilenceMonitor] %s silent for %dh (threshold: %dh)",
                settings.person_id,
                round(hours_since),
                settings.silence_window_hours,
            )
            self._evaluator.evaluate(CareSignal(
                person_id=settings.person_id,
                category=TriggerCategory.SILENCE,
                risk_score=risk,
                description=f"No interaction for {round(hours_since)} hours",
            ))
        return True

    def _already_escalated(self, settings: CareSettings, now: datetime) -> bool:
        hours = settings.escalation_cooldown_hours
        if hours <= 0:
            return False
        return self._event_log.count_since(
            settings.person_id,
            now - timedelta(hours=hours),
            min_layer=1,
            category=TriggerCategory.SILENCE,
        ) > 0


class BaselineUpdater:
    """Recomputes every monitored person's behavioral baseline.

    Each wellbeing source call is abandoned after ``call_timeout_seconds``;
    the person is then reported as failed and keeps their previous baseline.
    """

    def __init__(
        self,
        directory: PersonDirectory,
        wellbeing: WellbeingSource,
        baseline_store: BaselineStore,
        clock: Clock = utc_now,
        window_days: int = 30,
        max_workers: int = 8,
        call_timeout_seconds: float = 10.0,
    ) -> None:
        self._directory = directory
        self._wellbeing = wellbeing
        self._baseline_store = baseline_store
        self._clock = clock
        self._window = timedelta(days=window_days)
        self._max_workers = max_workers
        self._timeout = call_timeout_seconds
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="wellbeing-source"
        )

    def close(self) -> None:
        self._executor.shutdown(wait=False)

    def run(self) -> MonitorRunReport:
        report = MonitorRunReport(monitor="baseline-updater", started_at=self._clock())
        _fan_out(
            (p.person_id for p in self._directory.list_people()),
            self.update_person,
            report,
            self._max_workers,
        )
        report.finished_at = self._clock()
        logger.info(
            "[Baseline] %d updated, %d failed",
            len(report.fired),
            len(report.failed),
        )
        return report

    def update_person(self, person_id: str) -> bool:
        now = self._clock()
        logs = self._call(
            "wellbeing_logs", self._wellbeing.wellbeing_logs, person_id, now - self._window
        )
        last_interaction = self._call(
            "last_interaction", self._wellbeing.last_interaction, person_id
        )
        self._baseline_store.upsert(compute_baseline(person_id, logs, last_interaction, now))
        return True

    def _call(self, name: str, fn: Callable[..., Any], *args: Any) -> Any:
        future = self._executor.submit(fn, *args)
        try:
            return future.result(timeout=self._timeout)
        except FuturesTimeoutError:
            future.cancel()
            raise TimeoutError(f"{name} call timed out after {self._timeout}s") from None
