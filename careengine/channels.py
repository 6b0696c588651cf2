"""
Channel Collaborators -- Telephony and Messaging Interfaces.

The engine never places calls or sends messages itself.  It talks to two
collaborators through the protocols below: a telephony dispatcher that starts
an advisory voice-agent call to the monitored person, and a messaging gateway
that delivers WhatsApp or SMS messages to trusted contacts.

Both return ``True`` on success and ``False`` (or raise) on failure.  The
dispatcher treats any exception or timeout as a failed attempt.

The ``Recording*`` classes are process-local stubs: they record every call
and return a configurable result, with no external side effects.
"""

from __future__ import annotations

import logging
import threading
from typing import Protocol, runtime_checkable

from pydantic import BaseModel

from careengine.models import OutreachChannel

logger = logging.getLogger(__name__)


@runtime_checkable
class TelephonyDispatch(Protocol):
    def place_advisory_call(
        self, phone_number: str, person_id: str, script_message: str
    ) -> bool:
        """Start an advisory call to the monitored person."""
        ...


@runtime_checkable
class MessagingGateway(Protocol):
    def send_message(
        self, channel: OutreachChannel, to_number: str, body: str
    ) -> bool:
        """Deliver ``body`` to ``to_number`` over ``channel``."""
        ...


class PlacedCall(BaseModel):
    phone_number: str
    person_id: str
    script_message: str


class SentMessage(BaseModel):
    channel: OutreachChannel
    to_number: str
    body: str


class RecordingTelephony:
    """Stub telephony dispatcher that records calls instead of placing them."""

    def __init__(self, succeed: bool = True) -> None:
        self.succeed = succeed
        self.calls: list[PlacedCall] = []
        self._lock = threading.Lock()

    def place_advisory_call(
        self, phone_number: str, person_id: str, script_message: str
    ) -> bool:
        with self._lock:
            self.calls.append(PlacedCall(
                phone_number=phone_number,
                person_id=person_id,
                script_message=script_message,
            ))
        logger.info("[STUB] Advisory call for %s recorded", person_id)
        return self.succeed


class RecordingMessagingGateway:
    """Stub messaging gateway that records messages instead of sending them."""

    def __init__(self, succeed: bool = True) -> None:
        self.succeed = succeed
        self.messages: list[SentMessage] = []
        self._lock = threading.Lock()

    def send_message(
        self, channel: OutreachChannel, to_number: str, body: str
    ) -> bool:
        with self._lock:
            self.messages.append(SentMessage(channel=channel, to_number=to_number, body=body))
        logger.info("[STUB] %s message recorded", channel.value)
        return self.succeed
