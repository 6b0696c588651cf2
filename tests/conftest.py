"""Shared test fixtures for care engine tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest

from careengine.models import (
    CareEvent,
    EventOutcome,
    MonitoredPerson,
    TriggerCategory,
    TrustedContact,
)
from careengine.service import CareService
from careengine.settings import EngineSettings

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "CARE_LOG_LEVEL",
        "CARE_CONFIG_PATH",
        "CARE_CALL_TIMEOUT_SECONDS",
        "CARE_MONITOR_MAX_WORKERS",
    ):
        monkeypatch.delenv(name, raising=False)


class ManualClock:
    """Engine clock that only moves when a test moves it."""

    def __init__(self, start: datetime = NOW) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def service(clock: ManualClock):
    svc = CareService(
        engine_settings=EngineSettings(_env_file=None, call_timeout_seconds=2.0),
        clock=clock,
    )
    yield svc
    svc.close()


def enroll(
    service: CareService,
    person_id: str = "p_anna",
    display_name: str = "Anna",
    phone_number: Optional[str] = "+31600000001",
    **settings: Any,
) -> MonitoredPerson:
    """Register a person with care enabled (unless overridden)."""
    person = service.directory.register(MonitoredPerson(
        person_id=person_id,
        display_name=display_name,
        phone_number=phone_number,
    ))
    settings.setdefault("care_enabled", True)
    service.update_settings(person_id, **settings)
    return person


def add_contact(
    service: CareService,
    person_id: str = "p_anna",
    name: str = "Joost",
    phone_number: str = "+31600000002",
    **fields: Any,
) -> TrustedContact:
    return service.add_trusted_contact(TrustedContact(
        person_id=person_id,
        name=name,
        phone_number=phone_number,
        **fields,
    ))


def seed_event(
    service: CareService,
    created_at: datetime,
    person_id: str = "p_anna",
    layer: int = 1,
    outcome: EventOutcome = EventOutcome.PENDING,
    category: TriggerCategory = TriggerCategory.EMOTIONAL,
    risk_score: int = 3,
) -> CareEvent:
    """Write a historical event straight into the log."""
    return service.event_log.append(CareEvent(
        person_id=person_id,
        category=category,
        risk_score=risk_score,
        escalation_layer=layer,
        outcome=outcome,
        created_at=created_at,
    ))
