"""Turn an inbound message body into exactly one command variant."""
from __future__ import annotations

from dataclasses import dataclass, field

from app.errors import MalformedInput

LOG_ACTIVITY_PREFIX = "jek, catat"
SELECT_PERSONA_PREFIX = "jek, pilih ai"
SHOW_PERSONA_PREFIX = "jek, info ai"
LIST_PERSONAS_PREFIX = "jek, daftar ai"
START_TRAINING_PREFIX = "jek, latih"

LOG_ACTIVITY_USAGE = (
    "Format salah. Gunakan: jek, catat [aktivitas]: [detail1] [nilai1], [detail2] [nilai2]"
)


@dataclass(frozen=True)
class LogActivity:
    activity_type: str
    details: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class SelectPersona:
    persona: str


@dataclass(frozen=True)
class ShowPersona:
    pass


@dataclass(frozen=True)
class ListPersonas:
    pass


@dataclass(frozen=True)
class StartTraining:
    note: str = ""


@dataclass(frozen=True)
class Chat:
    text: str


Command = LogActivity | SelectPersona | ShowPersona | ListPersonas | StartTraining | Chat


def parse_details(details: str) -> dict[str, str]:
    """Parse "key value, key value" pairs; pairs without a value are dropped."""
    parsed: dict[str, str] = {}
    for part in details.split(","):
        tokens = part.strip().split()
        if len(tokens) < 2:
            continue
        parsed[tokens[0]] = " ".join(tokens[1:])
    return parsed


def _parse_log_activity(args: str) -> LogActivity:
    activity_type, sep, details = args.partition(":")
    activity_type = activity_type.strip()
    if not sep or not activity_type or not details.strip():
        raise MalformedInput(LOG_ACTIVITY_USAGE)
    return LogActivity(activity_type=activity_type, details=parse_details(details))


# Checked in order; the first matching prefix wins.
_PREFIXES = (
    (LOG_ACTIVITY_PREFIX, _parse_log_activity),
    (SELECT_PERSONA_PREFIX, lambda args: SelectPersona(persona=args.strip().lower())),
    (SHOW_PERSONA_PREFIX, lambda args: ShowPersona()),
    (LIST_PERSONAS_PREFIX, lambda args: ListPersonas()),
    (START_TRAINING_PREFIX, lambda args: StartTraining(note=args.strip())),
)


def _has_prefix(lowered: str, prefix: str) -> bool:
    """True when ``prefix`` is a whole word: followed by whitespace, ":" or nothing."""
    if not lowered.startswith(prefix):
        return False
    rest = lowered[len(prefix):]
    return not rest or rest[0].isspace() or rest[0] == ":"


def parse_command(text: str) -> Command:
    """Parse ``text`` into a command. Raises MalformedInput for bad arguments."""
    body = text.strip()
    lowered = body.lower()
    for prefix, build in _PREFIXES:
        if _has_prefix(lowered, prefix):
            return build(body[len(prefix):])
    return Chat(text=body)
