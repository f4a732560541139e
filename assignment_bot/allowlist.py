import logging

from assignment_bot.config import settings

logger = logging.getLogger(__name__)


class Allowlist:
    """Chats whose free text is read as academic content.

    Commands are answered from any chat; everything else only from the
    configured academic channels (``"6281234567890@c.us"``, ``"...@g.us"``).
    """

    def __init__(self, channels: list[str] | None = None) -> None:
        raw = settings.academic_channels if channels is None else channels
        self.channels = frozenset(c.strip() for c in raw if c.strip())
        if not self.channels:
            logger.warning("No academic channels configured; only commands will be processed")

    def is_monitored(self, chat_id: str) -> bool:
        return chat_id in self.channels

    def should_process(self, chat_id: str, is_command: bool) -> tuple[bool, str]:
        """Returns ``(should_process, reason)``."""
        if is_command:
            return True, "command"
        if self.is_monitored(chat_id):
            return True, "academic_channel"
        return False, "not_allowlisted"
