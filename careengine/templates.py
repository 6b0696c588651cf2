"""
Message templates, keyed by trigger category.

Messages to the monitored person are deliberately low-alarm: they never
mention what was detected.  Messages to the trusted circle name the person
and the concern, and ask for a human follow-up.
"""

from __future__ import annotations

from careengine.models import TriggerCategory

_DEFAULT_PERSON_MESSAGE = (
    "Just reaching out to see how you are doing. Nothing serious, "
    "just checking in."
)

PERSON_MESSAGES: dict[TriggerCategory, str] = {
    TriggerCategory.SILENCE: (
        "We have not talked for a little while. Just checking in to see how "
        "things are going."
    ),
    TriggerCategory.MEDICATION: (
        "Just checking in to see whether everything is going well with your "
        "medication."
    ),
    TriggerCategory.EMOTIONAL: (
        "Fancy a chat? There is no hurry, just a friendly catch-up."
    ),
}

CIRCLE_MESSAGES: dict[TriggerCategory, str] = {
    TriggerCategory.COGNITIVE_DRIFT: (
        "Hi, this is the care companion. Over the past few days I noticed "
        "{name} was a bit confused about dates and appointments. Nothing "
        "serious, but I wanted to let you know. Maybe give them a call?"
    ),
    TriggerCategory.EMOTIONAL: (
        "Hi, this is the care companion. {name} has seemed quieter and lower "
        "than usual lately. A quick call can make a big difference."
    ),
    TriggerCategory.SCAM: (
        "Hi, this is the care companion. {name} described a suspicious phone "
        "call. I helped, but it would be good to check in with them."
    ),
    TriggerCategory.SILENCE: (
        "Hi, this is the care companion. I have not spoken with {name} for a "
        "while, which is unusual. Could you check that everything is okay?"
    ),
    TriggerCategory.MEDICATION: (
        "Hi, this is the care companion. {name} has missed a few medication "
        "reminders. Maybe ask how it is going?"
    ),
    TriggerCategory.HELP_REQUEST: (
        "Hi, this is the care companion. {name} said they need help. Could "
        "you get in touch as soon as possible?"
    ),
    TriggerCategory.ENVIRONMENTAL: (
        "Hi, this is the care companion. {name} seemed disoriented during our "
        "conversation. Could you check that everything is alright?"
    ),
}

FALLBACK_PERSON_NAME = "your loved one"


def person_message(category: TriggerCategory) -> str:
    """Script for an advisory call to the monitored person."""
    return PERSON_MESSAGES.get(category, _DEFAULT_PERSON_MESSAGE)


def circle_message(category: TriggerCategory, person_name: str) -> str:
    """Message body for a trusted contact."""
    template = CIRCLE_MESSAGES.get(category, CIRCLE_MESSAGES[TriggerCategory.SILENCE])
    return template.format(name=person_name or FALLBACK_PERSON_NAME)
