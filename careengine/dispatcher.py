"""
Contact Dispatcher -- Direct Contact and Trusted-Circle Notification.

Executes the action a tier calls for, through the telephony and messaging
collaborators:

* Tiers 1-3 -- an advisory call to the monitored person.
* Tier 4, or tier 3 with critical raw risk -- one message to the single
  highest-priority eligible trusted contact, unless the weekly outreach cap
  has been reached.  At tier 4 the advisory call comes first only when the
  person's settings ask for it; at tier 3 it always does.

**Never double-fire, never silently fail:**

* At most one direct-contact attempt and at most one trusted-circle message
  per event.
* Failed, timed-out or impossible attempts are recorded on the event as
  ``ContactAttempt`` entries and logged.  Nothing is retried here; a retry
  could reach a vulnerable person twice.
* A failed direct contact does not block the trusted-circle notification.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Any, Callable, Optional

from careengine.channels import MessagingGateway, TelephonyDispatch
from careengine.event_log import (
    CareEventLog,
    ContactAlreadyRecordedError,
    InvalidOutcomeTransitionError,
)
from careengine.models import (
    MESSAGE_CHANNELS,
    CareEvent,
    Clock,
    ContactAttempt,
    ContactKind,
    EscalationDecision,
    OutreachChannel,
    StoreError,
    utc_now,
)
from careengine.people import PersonDirectory
from careengine.templates import circle_message, person_message
from careengine.trusted_circle import TrustedCircleRegistry

logger = logging.getLogger(__name__)


class CollaboratorResult:
    """Outcome of one collaborator call."""

    def __init__(self, succeeded: bool, detail: str) -> None:
        self.succeeded = succeeded
        self.detail = detail

    def __repr__(self) -> str:
        return f"CollaboratorResult(succeeded={self.succeeded}, detail='{self.detail}')"


class ContactDispatcher:
    """Carries out the contact side effects of an escalation decision.

    Args:
        event_log: Where attempts and contact outcomes are recorded.
        trusted_circle: Source of trusted contacts.
        directory: Resolves the monitored person's name and phone number.
        telephony: Advisory call collaborator.
        messaging: WhatsApp/SMS collaborator.
        call_timeout_seconds: Upper bound on any single collaborator call.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        event_log: CareEventLog,
        trusted_circle: TrustedCircleRegistry,
        directory: PersonDirectory,
        telephony: TelephonyDispatch,
        messaging: MessagingGateway,
        call_timeout_seconds: float = 10.0,
        clock: Clock = utc_now,
        max_workers: int = 4,
    ) -> None:
        self._event_log = event_log
        self._trusted_circle = trusted_circle
        self._directory = directory
        self._telephony = telephony
        self._messaging = messaging
        self._timeout = call_timeout_seconds
        self._clock = clock
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="care-dispatch"
        )

    def close(self) -> None:
        self._executor.shutdown(wait=False)

    # -- entry point --

    def dispatch(self, event: CareEvent, decision: EscalationDecision) -> CareEvent:
        """Run the tier's contact actions to completion for ``event``.

        Returns:
            The event as recorded after all attempts.
        """
        layer = decision.layer
        if layer == 0:
            return event

        if layer < 4 or decision.contact_person_first:
            self._attempt_direct_contact(event)

        if decision.notify_circle:
            if decision.at_cap:
                logger.info(
                    "Weekly outreach cap reached for %s; trusted circle not notified",
                    event.person_id,
                )
                self._record(event, ContactAttempt(
                    kind=ContactKind.TRUSTED_CIRCLE,
                    succeeded=False,
                    detail="Weekly outreach cap reached; no notification sent.",
                    attempted_at=self._clock(),
                ))
            else:
                self._notify_trusted_circle(event)

        return self._current(event)

    # -- direct contact --

    def _attempt_direct_contact(self, event: CareEvent) -> None:
        current = self._current(event)
        already = current.ai_contacted_elderly or any(
            a.kind == ContactKind.DIRECT for a in current.contact_attempts
        )
        if already:
            logger.info("Direct contact already attempted for event %s", event.event_id)
            return

        person = self._directory.find(event.person_id)
        if person is None or not person.phone_number:
            logger.warning("No phone number on file for %s; direct contact skipped", event.person_id)
            self._record(event, ContactAttempt(
                kind=ContactKind.DIRECT,
                channel=OutreachChannel.CALL,
                target_id=event.person_id,
                succeeded=False,
                detail="No phone number on file for the monitored person.",
                attempted_at=self._clock(),
            ))
            return

        result = self._invoke(
            "telephony",
            self._telephony.place_advisory_call,
            person.phone_number,
            event.person_id,
            person_message(event.category),
        )
        self._record(event, ContactAttempt(
            kind=ContactKind.DIRECT,
            channel=OutreachChannel.CALL,
            target_id=event.person_id,
            succeeded=result.succeeded,
            detail=result.detail,
            attempted_at=self._clock(),
        ))
        if result.succeeded:
            try:
                self._event_log.record_direct_contact(event.event_id)
            except StoreError:
                logger.exception("Could not record direct contact on event %s", event.event_id)
            except ContactAlreadyRecordedError:
                logger.info("Direct contact already recorded on event %s", event.event_id)
            logger.info("Called %s about %s", event.person_id, event.category.value)
        else:
            logger.warning(
                "Direct contact failed for %s (event %s): %s",
                event.person_id,
                event.event_id,
                result.detail,
            )

    # -- trusted circle --

    def _notify_trusted_circle(self, event: CareEvent) -> None:
        current = self._current(event)
        already = current.external_contact_id is not None or any(
            a.kind == ContactKind.TRUSTED_CIRCLE for a in current.contact_attempts
        )
        if already:
            logger.info("Trusted circle already handled for event %s", event.event_id)
            return

        try:
            eligible = self._trusted_circle.eligible_contacts(event.person_id, event.category)
        except StoreError:
            logger.exception("Could not read trusted circle for %s", event.person_id)
            self._record(event, ContactAttempt(
                kind=ContactKind.TRUSTED_CIRCLE,
                succeeded=False,
                detail="Trusted circle could not be read; no notification sent.",
                attempted_at=self._clock(),
            ))
            return

        if not eligible:
            logger.info("No eligible contacts for %s (%s)", event.person_id, event.category.value)
            self._record(event, ContactAttempt(
                kind=ContactKind.TRUSTED_CIRCLE,
                succeeded=False,
                detail=f"No active contact accepts {event.category.value} alerts.",
                attempted_at=self._clock(),
            ))
            return

        contact = eligible[0]
        channel = next((m for m in contact.outreach_methods if m in MESSAGE_CHANNELS), None)
        if channel is None:
            logger.info("Contact %s has no messaging channel; not notified", contact.contact_id)
            self._record(event, ContactAttempt(
                kind=ContactKind.TRUSTED_CIRCLE,
                target_id=contact.contact_id,
                succeeded=False,
                detail="Selected contact has no WhatsApp or SMS outreach method.",
                attempted_at=self._clock(),
            ))
            return

        person = self._directory.find(event.person_id)
        body = circle_message(event.category, person.display_name if person else "")
        result = self._invoke(
            "messaging",
            self._messaging.send_message,
            channel,
            contact.phone_number,
            body,
        )
        self._record(event, ContactAttempt(
            kind=ContactKind.TRUSTED_CIRCLE,
            channel=channel,
            target_id=contact.contact_id,
            succeeded=result.succeeded,
            detail=result.detail,
            attempted_at=self._clock(),
        ))
        if not result.succeeded:
            logger.warning(
                "Trusted-circle %s to contact %s failed (event %s): %s",
                channel.value,
                contact.contact_id,
                event.event_id,
                result.detail,
            )
            return

        try:
            self._event_log.record_external_contact(event.event_id, contact.contact_id, channel)
        except StoreError:
            logger.exception("Could not record trusted-circle contact on event %s", event.event_id)
            return
        except (ContactAlreadyRecordedError, InvalidOutcomeTransitionError) as exc:
            logger.warning("Trusted-circle contact on event %s not recorded: %s", event.event_id, exc)
            return
        logger.info(
            "Sent %s to contact %s about %s",
            channel.value,
            contact.contact_id,
            event.category.value,
        )

    # -- helpers --

    def _invoke(self, name: str, fn: Callable[..., Any], *args: Any) -> CollaboratorResult:
        """Call a collaborator with a bounded wait.  Never raises."""
        future = self._executor.submit(fn, *args)
        try:
            ok = future.result(timeout=self._timeout)
        except FuturesTimeoutError:
            future.cancel()
            return CollaboratorResult(False, f"{name} call timed out after {self._timeout}s")
        except Exception as exc:
            logger.exception("%s collaborator raised", name)
            return CollaboratorResult(False, f"{name} error: {type(exc).__name__}: {exc}")
        if ok:
            return CollaboratorResult(True, f"{name} call succeeded")
        return CollaboratorResult(False, f"{name} reported failure")

    def _record(self, event: CareEvent, attempt: ContactAttempt) -> None:
        try:
            self._event_log.record_attempt(event.event_id, attempt)
        except StoreError:
            logger.exception("Could not record contact attempt on event %s", event.event_id)

    def _current(self, event: CareEvent) -> CareEvent:
        try:
            return self._event_log.get(event.event_id)
        except StoreError:
            logger.exception("Could not re-read event %s", event.event_id)
            return event
