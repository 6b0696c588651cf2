"""Directory of monitored people, used to resolve names and phone numbers."""

from __future__ import annotations

import copy
import threading

from careengine.models import MonitoredPerson


class UnknownPersonError(KeyError):
    """Raised when a person is not in the directory."""


class PersonDirectory:
    """Read-mostly registry of ``MonitoredPerson`` records.

    Onboarding happens elsewhere; the engine only looks people up.
    """

    def __init__(self) -> None:
        self._people: dict[str, MonitoredPerson] = {}
        self._lock = threading.RLock()

    def register(self, person: MonitoredPerson) -> MonitoredPerson:
        with self._lock:
            self._people[person.person_id] = copy.deepcopy(person)
            return copy.deepcopy(person)

    def get(self, person_id: str) -> MonitoredPerson:
        with self._lock:
            person = self._people.get(person_id)
            if person is None:
                raise UnknownPersonError(f"No monitored person '{person_id}'")
            return copy.deepcopy(person)

    def find(self, person_id: str) -> MonitoredPerson | None:
        with self._lock:
            person = self._people.get(person_id)
            return copy.deepcopy(person) if person is not None else None

    def list_people(self) -> list[MonitoredPerson]:
        with self._lock:
            return [copy.deepcopy(p) for p in self._people.values()]

    def __len__(self) -> int:
        return len(self._people)

    def __contains__(self, person_id: str) -> bool:
        return person_id in self._people
