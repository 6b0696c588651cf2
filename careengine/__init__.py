"""
Care Escalation Engine
======================

Decides whether, how and whom to notify when a monitored person's wellbeing
signals suggest risk.  Signals are scored upstream; this package turns them
into escalation tiers (0 = observe only, 4 = notify the trusted circle),
applies cooldowns, weekly caps, corroboration and false-alarm feedback, and
carries out at most one direct contact and one trusted-circle message per
event -- logging every decision in an append-only, hash-chained event log.

The engine never diagnoses.  It always tries the monitored person first,
de-escalates before it escalates, and only reaches outside when necessary.
"""

__version__ = "0.1.0"
