"""Built-in commands that are not part of any feature module."""

from typing import Optional

from ..models import IncomingMessage, ReplyPayload
from .base import Command, HandlerRegistry, ReplySink

HELP_TRIGGERS = ("!help", "!h")


class CoreCommands:
    """!help: list the help line of every registered command.

    Args:
        registry: Registry whose commands are listed. Read at call time,
            so commands registered later still show up.
    """

    def __init__(self, registry: HandlerRegistry):
        self.registry = registry

    def get_commands(self):
        return [
            Command("core", "!help/!h => Show this help", HELP_TRIGGERS, self.handle_help),
        ]

    async def handle_help(
        self, msg: IncomingMessage, reply: Optional[ReplySink]
    ) -> bool:
        fields = msg.fields
        if not fields or fields[0] not in HELP_TRIGGERS:
            return False

        lines = [c.help_message for c in self.registry.commands if c.help_message]
        if reply is not None and lines:
            await reply(ReplyPayload(message="\n".join(lines), destination=msg.sender))
        return True
