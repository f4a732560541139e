import re

from assignment_bot.models import Classification, Command, InboundMessage, MessageKind

SIGIL = "#"

# verb -> (min args, max args)
KNOWN_VERBS = {
    "ping": (0, 0),
    "help": (0, 0),
    "today": (0, 0),
    "tugas": (0, 1),
    "done": (1, 1),
    "undone": (0, 1),
    "expand": (1, 1),
}

_SHORTCUT = re.compile(r"#(\d+)")

_IGNORABLE = Classification(MessageKind.IGNORABLE)
_CANDIDATE = Classification(MessageKind.CANDIDATE)


def parse_command(text: str) -> Command | None:
    """Parse ``#verb [n]`` (case-insensitive) or the ``#n`` shortcut.

    ``#tugas n`` and ``#n`` are both spelled-out forms of ``#expand n``.
    Returns None for anything that is not a known verb with valid arguments.
    """
    text = text.strip().lower()
    if not text.startswith(SIGIL):
        return None
    m = _SHORTCUT.fullmatch(text)
    if m:
        return Command("expand", (int(m.group(1)),))

    words = text[len(SIGIL):].split()
    if not words or words[0] not in KNOWN_VERBS:
        return None
    verb, *raw_args = words
    low, high = KNOWN_VERBS[verb]
    if not low <= len(raw_args) <= high or not all(a.isdigit() for a in raw_args):
        return None
    args = tuple(int(a) for a in raw_args)
    if verb == "tugas" and args:
        return Command("expand", args)
    return Command(verb, args)


def classify(message: InboundMessage, is_monitored: bool = True) -> Classification:
    """Label an inbound message as a command, candidate text or ignorable.

    Pure: *is_monitored* is the caller's allow-list answer for the chat.
    """
    if message.from_me or not isinstance(message.text, str):
        return _IGNORABLE
    command = parse_command(message.text)
    if command is not None:
        return Classification(MessageKind.COMMAND, command)
    if not is_monitored:
        return _IGNORABLE
    if not message.text.strip() and not message.has_image:
        return _IGNORABLE
    return _CANDIDATE
