"""Base types for the command handler framework.

Command handlers are keyed by trigger token (``!memo``); passive
handlers see every line that is not a known command. Each registration
carries the reply sink the handler will be given when it runs.

Key classes:
    Command: A feature's command declaration (triggers, handler, help).
    HandlerRegistry: Trigger table plus ordered passive handler list.
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

import structlog

from ..models import IncomingMessage, ReplyPayload

logger = structlog.get_logger("chanbot.dispatch")

ReplySink = Callable[[ReplyPayload], Awaitable[None]]
CommandHandler = Callable[[IncomingMessage, ReplySink], Awaitable[bool]]
MessageHandler = Callable[[IncomingMessage, ReplySink], Awaitable[None]]


@dataclass
class Command:
    """A command offered by a feature module.

    Attributes:
        module: Name of the feature the command belongs to.
        help_message: One line shown by !help.
        triggers: Tokens that invoke the handler.
        handler: async (msg, reply_sink) -> bool. Must return True only
            if it recognized and processed the message.
    """
    module: str
    help_message: str
    triggers: Tuple[str, ...]
    handler: Optional[CommandHandler] = field(default=None, repr=False)


@dataclass(frozen=True)
class HandlerEntry:
    """A registered handler bound to its reply sink."""
    handler: Callable[[IncomingMessage, ReplySink], Awaitable[Optional[bool]]]
    reply_sink: Optional[ReplySink]


class HandlerRegistry:
    """Maps trigger tokens to command handlers and keeps passive handlers.

    Triggers are case-sensitive. Registering a trigger again replaces
    the previous binding. Nothing is ever unregistered.
    """

    def __init__(self):
        self._commands: Dict[str, HandlerEntry] = {}
        self._passive: List[HandlerEntry] = []
        self._declared: List[Command] = []

    def register_command(
        self,
        triggers: Iterable[str],
        handler: Optional[CommandHandler],
        reply_sink: Optional[ReplySink],
    ) -> None:
        """Bind every trigger to the same (handler, reply_sink) pair.

        A ``None`` handler is ignored.
        """
        if handler is None:
            return
        entry = HandlerEntry(handler, reply_sink)
        for trigger in triggers:
            if trigger in self._commands:
                logger.warning(
                    "command_handler_replaced",
                    trigger=trigger,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                )
            self._commands[trigger] = entry

    def register_passive(
        self, handler: Optional[MessageHandler], reply_sink: Optional[ReplySink]
    ) -> None:
        """Append a passive handler. Registration order is invocation order."""
        if handler is None:
            return
        self._passive.append(HandlerEntry(handler, reply_sink))

    def add_command(self, command: Command, reply_sink: Optional[ReplySink]) -> None:
        """Register a Command and remember it for the help listing."""
        if command.handler is None:
            return
        self.register_command(command.triggers, command.handler, reply_sink)
        self._declared.append(command)

    def get(self, trigger: str) -> Optional[HandlerEntry]:
        """Look up the entry bound to a trigger."""
        return self._commands.get(trigger)

    @property
    def passive_handlers(self) -> Tuple[HandlerEntry, ...]:
        return tuple(self._passive)

    @property
    def triggers(self) -> frozenset:
        """All registered trigger tokens."""
        return frozenset(self._commands.keys())

    @property
    def commands(self) -> Tuple[Command, ...]:
        """Commands registered through add_command, in order."""
        return tuple(self._declared)
