"""
Signal Evaluator -- Risk Scoring and Escalation Tier Decisions.

Turns a scored ``CareSignal`` into a tier from 0 (observe only) to 4
(notify the trusted circle), records it as a ``CareEvent``, and hands
actionable tiers to the contact dispatcher.

**Decision pipeline:**

1. Settings are loaded (created with defaults if absent).
2. Care disabled -- tier 0, observation only.
3. Cooldown -- any event inside the cooldown window suppresses to tier 0,
   unless the raw risk is critical (8 or higher).
4. Weekly cap -- tier-2-or-higher events in the trailing week are counted;
   reaching the cap withholds trusted-circle notification only.
5. Adjusted risk -- raw risk scaled by category weight and sensitivity,
   rounded half-up and clamped to [0, 10].
6. Tier lookup against thresholds shifted by the sensitivity bias.
7. Corroboration -- a moderate signal cannot reach tier 3 or 4 on its own;
   at least two events in the trailing 48 hours are required.
8. False-alarm feedback -- a false alarm in the trailing week lowers a
   moderate tier-2-or-higher decision by one.
9. Critical routing -- tier 3 with critical raw risk stays tier 3 but is
   handed to the dispatcher as a trusted-circle notification, like tier 4.

Steps 1-9 and the append run under a per-person lock, so two signals for the
same person can never both pass the cooldown check before either is logged.

**Failure model:**  the evaluator never raises for a well-formed signal.  A
``StoreError`` while reading history or appending the event yields a
``NOT_EVALUATED`` result with no event and no dispatch, so the caller can
resubmit.  Dispatch failures, including an exception escaping the
dispatcher, are recorded on the event and never change the result status.
"""

from __future__ import annotations

import enum
import logging
import threading
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Optional

from careengine.config import CareSettings, SettingsStore
from careengine.event_log import CareEventLog
from careengine.models import (
    CareEvent,
    CareSignal,
    Clock,
    ContactAttempt,
    ContactKind,
    EscalationDecision,
    EventOutcome,
    Sensitivity,
    StoreError,
    TriggerCategory,
    utc_now,
)

if TYPE_CHECKING:
    from careengine.dispatcher import ContactDispatcher

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Policy constants
# ---------------------------------------------------------------------------

CATEGORY_WEIGHTS: dict[TriggerCategory, Decimal] = {
    TriggerCategory.SCAM: Decimal("1.5"),
    TriggerCategory.HELP_REQUEST: Decimal("1.4"),
    TriggerCategory.ENVIRONMENTAL: Decimal("1.3"),
    TriggerCategory.SILENCE: Decimal("1.1"),
    TriggerCategory.COGNITIVE_DRIFT: Decimal("1.0"),
    TriggerCategory.EMOTIONAL: Decimal("1.0"),
    TriggerCategory.MEDICATION: Decimal("0.8"),
}

SENSITIVITY_MULTIPLIERS: dict[Sensitivity, Decimal] = {
    Sensitivity.CONSERVATIVE: Decimal("0.7"),
    Sensitivity.BALANCED: Decimal("1.0"),
    Sensitivity.PROTECTIVE: Decimal("1.4"),
}

SENSITIVITY_BIAS: dict[Sensitivity, int] = {
    Sensitivity.CONSERVATIVE: 1,
    Sensitivity.BALANCED: 0,
    Sensitivity.PROTECTIVE: -1,
}

# Upper bounds (inclusive) of tiers 0-3 before the sensitivity bias
_TIER_UPPER_BOUNDS = (2, 4, 6, 8)

MAX_RISK = 10
CRITICAL_RISK = 8
FALSE_ALARM_RISK_CEILING = 7

OUTREACH_CAP_WINDOW = timedelta(days=7)
CORROBORATION_WINDOW = timedelta(hours=48)
CORROBORATION_MIN_EVENTS = 2
FALSE_ALARM_WINDOW = timedelta(days=7)

_LAYER_ACTIONS: dict[int, str] = {
    0: "Observed and logged, no action needed",
    1: "Gentle clarification, attempting to contact the monitored person",
    2: (
        "Confirmed outreach, contacting the monitored person; permission will "
        "be asked before involving the trusted circle"
    ),
    3: (
        "Soft protective, contacting the monitored person; will escalate if "
        "there is no response"
    ),
    4: "Critical safeguard, contacting the trusted circle",
}


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_adjusted_risk(
    raw_risk: int, category: TriggerCategory, sensitivity: Sensitivity
) -> int:
    """Scale raw risk by category weight and sensitivity.

    Uses exact decimal arithmetic, so ``5 x 0.7 = 3.5`` rounds to 4 rather
    than falling to 3 through binary floating point error.
    """
    scaled = (
        Decimal(raw_risk)
        * CATEGORY_WEIGHTS.get(category, Decimal("1.0"))
        * SENSITIVITY_MULTIPLIERS[sensitivity]
    )
    return max(0, min(MAX_RISK, round_half_up(min(Decimal(MAX_RISK), scaled))))


def determine_layer(adjusted_risk: int, sensitivity: Sensitivity) -> int:
    """Map adjusted risk to a tier.  Upper bounds are inclusive."""
    bias = SENSITIVITY_BIAS[sensitivity]
    risk = max(0, min(MAX_RISK, adjusted_risk))
    for layer, upper in enumerate(_TIER_UPPER_BOUNDS):
        if risk <= upper + bias:
            return layer
    return 4


# ---------------------------------------------------------------------------
# Per-person serialization
# ---------------------------------------------------------------------------

class PersonLockRegistry:
    """Hands out one re-entrant lock per person; locks are created on first use."""

    def __init__(self) -> None:
        self._locks: dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def lock_for(self, person_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(person_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[person_id] = lock
            return lock


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

class EvaluationStatus(str, enum.Enum):
    RECORDED = "recorded"
    NOT_EVALUATED = "not_evaluated"


class SignalEvaluationResult:
    """Result of evaluating one signal.

    ``event`` is the recorded ``CareEvent`` (after dispatch, if any), or
    None when the signal could not be evaluated.
    """

    def __init__(
        self,
        status: EvaluationStatus,
        event: Optional[CareEvent],
        reasons: list[str],
        decision: Optional[EscalationDecision] = None,
    ) -> None:
        self.status = status
        self.event = event
        self.reasons = reasons
        self.decision = decision

    @property
    def evaluated(self) -> bool:
        return self.status == EvaluationStatus.RECORDED

    @property
    def layer(self) -> Optional[int]:
        return self.event.escalation_layer if self.event is not None else None

    def requires_action(self) -> bool:
        """Whether the recorded tier called for contacting anyone."""
        return self.event is not None and self.event.escalation_layer >= 1

    def __repr__(self) -> str:
        return (
            f"SignalEvaluationResult(status={self.status.value}, "
            f"layer={self.layer}, reasons={self.reasons})"
        )


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------

class SignalEvaluator:
    """Single entry point for every wellbeing signal.

    Args:
        settings_store: Per-person care settings.
        event_log: The care event log (history source and audit trail).
        dispatcher: Executes actionable tiers; None records decisions only.
        clock: Returns the current UTC time.
        locks: Per-person lock registry; share one between evaluators that
            write to the same event log.
    """

    def __init__(
        self,
        settings_store: SettingsStore,
        event_log: CareEventLog,
        dispatcher: Optional["ContactDispatcher"] = None,
        clock: Clock = utc_now,
        locks: Optional[PersonLockRegistry] = None,
    ) -> None:
        self._settings_store = settings_store
        self._event_log = event_log
        self._dispatcher = dispatcher
        self._clock = clock
        self._locks = locks or PersonLockRegistry()

    @property
    def locks(self) -> PersonLockRegistry:
        return self._locks

    def evaluate(self, signal: CareSignal) -> SignalEvaluationResult:
        person_id = signal.person_id

        with self._locks.lock_for(person_id):
            now = self._clock()
            try:
                decision = self._decide(signal, now)
            except StoreError:
                logger.exception(
                    "Could not read care history for %s; signal not evaluated", person_id
                )
                return _not_evaluated("Care history could not be read; resubmit the signal.")

            event = CareEvent(
                person_id=person_id,
                category=signal.category,
                risk_score=signal.risk_score,
                escalation_layer=decision.layer,
                adjusted_risk=decision.adjusted_risk,
                description=signal.description,
                ai_action=decision.action,
                reasons=decision.reasons,
                outcome=EventOutcome.RESOLVED if decision.layer == 0 else EventOutcome.PENDING,
                created_at=now,
            )
            try:
                event = self._event_log.append(event)
            except StoreError:
                logger.exception(
                    "Could not record care event for %s; nothing dispatched", person_id
                )
                return _not_evaluated("Care event could not be recorded; resubmit the signal.")

        logger.info(
            "Signal %s for %s: raw=%d adjusted=%s layer=L%d",
            signal.category.value,
            person_id,
            signal.risk_score,
            decision.adjusted_risk,
            decision.layer,
        )

        if decision.layer > 0 and self._dispatcher is not None:
            try:
                event = self._dispatcher.dispatch(event, decision)
            except Exception as exc:
                logger.exception("Dispatch aborted for event %s", event.event_id)
                event = self._record_dispatch_failure(event, decision, exc)

        return SignalEvaluationResult(
            status=EvaluationStatus.RECORDED,
            event=event,
            reasons=list(decision.reasons),
            decision=decision,
        )

    def _record_dispatch_failure(
        self, event: CareEvent, decision: EscalationDecision, exc: Exception
    ) -> CareEvent:
        attempt = ContactAttempt(
            kind=ContactKind.TRUSTED_CIRCLE if decision.notify_circle else ContactKind.DIRECT,
            succeeded=False,
            detail=f"Dispatch aborted: {type(exc).__name__}: {exc}",
            attempted_at=self._clock(),
        )
        try:
            return self._event_log.record_attempt(event.event_id, attempt)
        except Exception:
            logger.exception("Could not record dispatch failure on event %s", event.event_id)
            return event

    # -- decision --

    def _decide(self, signal: CareSignal, now: datetime) -> EscalationDecision:
        settings = self._settings_store.get_or_create(signal.person_id)
        reasons: list[str] = []
        if signal.ai_action:
            reasons.append(f"Producer rationale: {signal.ai_action}")

        if not settings.care_enabled:
            reasons.append("Care is not enabled for this person; recorded for observation only.")
            return EscalationDecision(
                layer=0,
                action="Care not enabled, observation only",
                reasons=reasons,
            )

        if self._in_cooldown(signal, settings, now):
            if signal.risk_score < CRITICAL_RISK:
                logger.info(
                    "In cooldown for %s, suppressing (risk=%d)",
                    signal.person_id,
                    signal.risk_score,
                )
                reasons.append(
                    f"Another event was recorded within the "
                    f"{settings.escalation_cooldown_hours}h cooldown and raw risk "
                    f"{signal.risk_score} is below {CRITICAL_RISK}."
                )
                return EscalationDecision(
                    layer=0,
                    action="Suppressed, within cooldown period",
                    reasons=reasons,
                )
            reasons.append(
                f"Raw risk {signal.risk_score} is critical; cooldown bypassed."
            )

        weekly_count = self._event_log.count_since(
            signal.person_id, now - OUTREACH_CAP_WINDOW, min_layer=2
        )
        at_cap = weekly_count >= settings.max_outreach_per_week

        adjusted = compute_adjusted_risk(
            signal.risk_score, signal.category, settings.sensitivity
        )
        layer = determine_layer(adjusted, settings.sensitivity)
        reasons.append(
            f"Adjusted risk {adjusted} (raw {signal.risk_score}, category "
            f"{signal.category.value}, sensitivity {settings.sensitivity.value}) "
            f"maps to tier {layer}."
        )

        if layer >= 3 and signal.risk_score < CRITICAL_RISK:
            recent = self._event_log.count_since(
                signal.person_id, now - CORROBORATION_WINDOW
            )
            if recent < CORROBORATION_MIN_EVENTS:
                logger.info(
                    "Downgrading L%d to L2 for %s: only %d signal(s) in 48h",
                    layer,
                    signal.person_id,
                    recent,
                )
                reasons.append(
                    f"Only {recent} other signal(s) in the last 48h; at least "
                    f"{CORROBORATION_MIN_EVENTS} are needed before tier {layer}. "
                    f"Downgraded to tier 2."
                )
                layer = 2

        if layer >= 2 and signal.risk_score < FALSE_ALARM_RISK_CEILING:
            false_alarms = self._event_log.count_since(
                signal.person_id,
                now - FALSE_ALARM_WINDOW,
                outcome=EventOutcome.FALSE_ALARM,
            )
            if false_alarms > 0:
                logger.info(
                    "%d false alarm(s) this week for %s, downgrading L%d to L%d",
                    false_alarms,
                    signal.person_id,
                    layer,
                    layer - 1,
                )
                reasons.append(
                    f"{false_alarms} false alarm(s) in the last 7 days; tier "
                    f"lowered from {layer} to {layer - 1}."
                )
                layer = max(0, layer - 1)

        notify_circle = layer == 4
        action = _LAYER_ACTIONS[layer]
        if layer == 3 and signal.risk_score >= CRITICAL_RISK:
            notify_circle = True
            action = f"{action}; critical risk, trusted circle will be contacted"
            reasons.append(
                f"Raw risk {signal.risk_score} is critical; the trusted circle "
                f"is contacted at tier 3."
            )

        if at_cap and layer >= 3:
            reasons.append(
                f"Weekly outreach cap reached ({weekly_count} of "
                f"{settings.max_outreach_per_week}); the trusted circle will not "
                f"be notified."
            )
            if notify_circle:
                action = "Weekly outreach cap reached; trusted circle not contacted"
            else:
                action = f"{action}; weekly outreach cap reached"

        return EscalationDecision(
            layer=layer,
            adjusted_risk=adjusted,
            at_cap=at_cap,
            notify_circle=notify_circle,
            contact_person_first=layer < 4 or settings.ai_first_contact,
            action=action,
            reasons=reasons,
        )

    def _in_cooldown(
        self, signal: CareSignal, settings: CareSettings, now: datetime
    ) -> bool:
        hours = settings.escalation_cooldown_hours
        if hours <= 0:
            return False
        return self._event_log.has_event_since(
            signal.person_id, now - timedelta(hours=hours)
        )


def _not_evaluated(reason: str) -> SignalEvaluationResult:
    return SignalEvaluationResult(
        status=EvaluationStatus.NOT_EVALUATED,
        event=None,
        reasons=[reason],
    )
