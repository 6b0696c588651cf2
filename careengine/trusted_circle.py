"""
Trusted Circle Registry.

Holds each monitored person's prioritized list of trusted contacts.  The
engine only ever reads it to pick who to notify; adding, editing and
removing contacts is plain pass-through CRUD for the route layer.

Selection order is ``priority_order`` ascending, ties broken by the order in
which contacts were added.
"""

from __future__ import annotations

import copy
import itertools
import threading
from typing import Any

from careengine.models import TriggerCategory, TrustedContact


class ContactNotFoundError(KeyError):
    """Raised when a contact id is not registered."""


class TrustedCircleRegistry:
    """In-memory registry of trusted contacts keyed by ``contact_id``."""

    def __init__(self) -> None:
        self._contacts: dict[str, TrustedContact] = {}
        self._sequence: dict[str, int] = {}
        self._counter = itertools.count()
        self._lock = threading.RLock()

    def add(self, contact: TrustedContact) -> TrustedContact:
        """Register a new contact.

        Raises:
            ValueError: If ``contact_id`` is already registered.
        """
        with self._lock:
            if contact.contact_id in self._contacts:
                raise ValueError(f"Contact '{contact.contact_id}' already registered")
            self._contacts[contact.contact_id] = copy.deepcopy(contact)
            self._sequence[contact.contact_id] = next(self._counter)
            return copy.deepcopy(contact)

    def update(self, contact_id: str, **changes: Any) -> TrustedContact:
        """Apply field changes to a contact.

        Raises:
            ContactNotFoundError: If the contact does not exist.
            ValueError: If an identity field is among the changes.
            pydantic.ValidationError: If a change is invalid.
        """
        if {"contact_id", "person_id"} & changes.keys():
            raise ValueError("contact_id and person_id cannot be changed")
        with self._lock:
            current = self._get_stored(contact_id)
            merged = current.model_dump()
            merged.update(changes)
            updated = TrustedContact(**merged)
            self._contacts[contact_id] = updated
            return copy.deepcopy(updated)

    def remove(self, contact_id: str) -> None:
        with self._lock:
            self._get_stored(contact_id)
            del self._contacts[contact_id]
            del self._sequence[contact_id]

    def get(self, contact_id: str) -> TrustedContact:
        with self._lock:
            return copy.deepcopy(self._get_stored(contact_id))

    def list_for_person(self, person_id: str) -> list[TrustedContact]:
        """All of a person's contacts, in selection order."""
        with self._lock:
            contacts = [c for c in self._contacts.values() if c.person_id == person_id]
            contacts.sort(key=lambda c: (c.priority_order, self._sequence[c.contact_id]))
            return copy.deepcopy(contacts)

    def eligible_contacts(
        self, person_id: str, category: TriggerCategory
    ) -> list[TrustedContact]:
        """Active contacts that accept alerts for ``category``, in selection order."""
        return [
            c
            for c in self.list_for_person(person_id)
            if c.is_active and c.is_eligible_for(category)
        ]

    def _get_stored(self, contact_id: str) -> TrustedContact:
        contact = self._contacts.get(contact_id)
        if contact is None:
            raise ContactNotFoundError(f"No trusted contact '{contact_id}'")
        return contact

    def __len__(self) -> int:
        return len(self._contacts)
