"""
Per-Person Care Settings -- Policy Configuration for the Escalation Engine.

Each monitored person carries exactly one ``CareSettings`` row that governs
how the engine treats their signals: whether care is enabled at all, how
sensitive tier thresholds are, how long a silence must last before it counts,
and how often outreach may happen.

**Why settings are per person:**

Families differ.  A person living alone after a recent fall may need a
protective profile with a short silence window; someone who finds frequent
check-in calls intrusive needs a conservative profile and a low weekly cap.
Settings are created lazily with safe defaults the first time a person is
seen, and are edited by humans afterwards (last writer wins).

The module also loads seed files (YAML) describing people, their settings
and their trusted circles, for development and for the standalone daemon.
"""

from __future__ import annotations

import copy
import logging
import threading
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from careengine.models import (
    MonitoredPerson,
    ScamThreshold,
    Sensitivity,
    TrustedContact,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Care settings model
# ---------------------------------------------------------------------------

class CareSettings(BaseModel):
    """Care configuration for a single monitored person."""

    person_id: str = Field(..., min_length=1)
    care_enabled: bool = Field(
        default=False,
        description=(
            "Master switch.  While false every signal is logged at tier 0 "
            "and nobody is contacted."
        ),
    )
    ai_first_contact: bool = Field(
        default=True,
        description=(
            "Try the monitored person before the trusted circle, even at "
            "tier 4, so they hear about it from the engine first.  The call "
            "is bounded by the collaborator timeout, which caps how long the "
            "trusted-circle message can be delayed; set False to message the "
            "circle immediately."
        ),
    )
    sensitivity: Sensitivity = Field(
        default=Sensitivity.BALANCED,
        description="Shifts risk scaling and tier thresholds.",
    )
    silence_window_hours: int = Field(
        default=48,
        ge=1,
        description="Hours without interaction before the silence monitor fires.",
    )
    cognitive_drift_threshold: int = Field(
        default=5,
        ge=1,
        le=10,
        description="Informational; consumed by the upstream signal producer.",
    )
    scam_threshold: ScamThreshold = Field(
        default=ScamThreshold.MEDIUM,
        description="Informational; consumed by the upstream signal producer.",
    )
    max_outreach_per_week: int = Field(
        default=3,
        ge=1,
        description=(
            "Maximum number of tier-2-or-higher events in a trailing 7-day "
            "window before trusted-circle notification is withheld."
        ),
    )
    escalation_cooldown_hours: int = Field(
        default=24,
        ge=0,
        description=(
            "Minimum spacing between evaluations for this person.  Signals "
            "with raw risk 8 or higher bypass it."
        ),
    )

    @field_validator("sensitivity", mode="before")
    @classmethod
    def normalize_sensitivity(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v


# ---------------------------------------------------------------------------
# Settings store
# ---------------------------------------------------------------------------

class SettingsStore:
    """In-memory store holding one ``CareSettings`` per person.

    ``get_or_create`` never fails for a missing person: absence of
    configuration is resolved by creating the defaults.  All reads return
    deep copies, so callers cannot mutate stored settings by accident.
    """

    def __init__(self) -> None:
        self._settings: dict[str, CareSettings] = {}
        self._lock = threading.RLock()

    def get(self, person_id: str) -> Optional[CareSettings]:
        with self._lock:
            settings = self._settings.get(person_id)
            return copy.deepcopy(settings) if settings is not None else None

    def get_or_create(self, person_id: str) -> CareSettings:
        """Return the person's settings, creating defaults if absent."""
        with self._lock:
            if person_id not in self._settings:
                logger.info("Creating default care settings for %s", person_id)
                self._settings[person_id] = CareSettings(person_id=person_id)
            return copy.deepcopy(self._settings[person_id])

    def upsert(self, settings: CareSettings) -> CareSettings:
        """Insert or replace the settings row for ``settings.person_id``."""
        with self._lock:
            self._settings[settings.person_id] = copy.deepcopy(settings)
            return copy.deepcopy(settings)

    def update(self, person_id: str, **changes: Any) -> CareSettings:
        """Apply field changes to a person's settings (last writer wins).

        Missing settings are created with defaults first.  Changes are
        validated through the model, so an invalid value leaves the stored
        row untouched.

        Raises:
            pydantic.ValidationError: If a change is invalid.
            ValueError: If ``person_id`` is among the changes.
        """
        if "person_id" in changes:
            raise ValueError("person_id cannot be changed")
        with self._lock:
            current = self._settings.get(person_id) or CareSettings(person_id=person_id)
            merged = current.model_dump()
            merged.update(changes)
            updated = CareSettings(**merged)
            self._settings[person_id] = updated
            return copy.deepcopy(updated)

    def list_enabled(self) -> list[CareSettings]:
        """Settings of every person with care enabled."""
        with self._lock:
            return [
                copy.deepcopy(s) for s in self._settings.values() if s.care_enabled
            ]

    def list_person_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._settings.keys())

    def __len__(self) -> int:
        return len(self._settings)

    def __contains__(self, person_id: str) -> bool:
        return person_id in self._settings


# ---------------------------------------------------------------------------
# YAML seed loader
# ---------------------------------------------------------------------------

class PersonConfig(BaseModel):
    """One ``people`` entry of a seed file."""

    person: MonitoredPerson
    settings: CareSettings
    trusted_circle: list[TrustedContact] = Field(default_factory=list)


def load_care_config_from_yaml(path: str | Path) -> list[PersonConfig]:
    """Load people, their settings and trusted circles from a YAML file.

    Example YAML structure::

        people:
          - person_id: "p_anna"
            display_name: "Anna"
            phone_number: "+31600000001"
            settings:
              care_enabled: true
              sensitivity: protective
            trusted_circle:
              - name: "Joost"
                phone_number: "+31600000002"
                priority_order: 1
                outreach_methods: [whatsapp, sms]

    ``person_id`` is filled into nested settings and contacts.

    Args:
        path: Path to the YAML file.

    Returns:
        List of validated ``PersonConfig`` instances.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the YAML structure is invalid.
        pydantic.ValidationError: If any entry fails validation.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Care config file not found: {path}")

    with open(path, "r") as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict) or "people" not in raw:
        raise ValueError(
            "YAML file must contain a top-level 'people' key with a list of person entries."
        )

    people_data = raw["people"]
    if not isinstance(people_data, list):
        raise ValueError("'people' must be a list of person entries.")

    configs: list[PersonConfig] = []
    for idx, entry in enumerate(people_data):
        if not isinstance(entry, dict):
            raise ValueError(f"Person entry at index {idx} must be a mapping.")
        entry = dict(entry)
        settings_data = entry.pop("settings", None) or {}
        circle_data = entry.pop("trusted_circle", None) or []
        if not isinstance(settings_data, dict):
            raise ValueError(f"'settings' of person entry {idx} must be a mapping.")
        if not isinstance(circle_data, list):
            raise ValueError(f"'trusted_circle' of person entry {idx} must be a list.")

        person = MonitoredPerson(**entry)
        settings = CareSettings(person_id=person.person_id, **settings_data)
        contacts = [
            TrustedContact(person_id=person.person_id, **c)
            for c in circle_data
        ]
        configs.append(PersonConfig(person=person, settings=settings, trusted_circle=contacts))

    return configs
