"""Message types exchanged between the transport, the dispatcher and handlers."""

from dataclasses import dataclass, field
from typing import Any, List

CHANNEL_PREFIXES = ("#", "&")


@dataclass(frozen=True)
class IncomingMessage:
    """A single PRIVMSG received from the network.

    Attributes:
        sender: Nick of the user who sent the line.
        origin_target: Channel the line was posted in, or the bot's own
            nick for a direct message.
        text: Raw message text.
        connection: Connection the line arrived on.
    """

    sender: str
    origin_target: str
    text: str
    connection: Any = field(default=None, repr=False, compare=False)

    @property
    def fields(self) -> List[str]:
        """Whitespace-delimited tokens of the text."""
        return self.text.split()

    @property
    def is_channel_message(self) -> bool:
        return self.origin_target.strip().startswith(CHANNEL_PREFIXES)

    @property
    def reply_target(self) -> str:
        """Where an answer to this line should go: the channel or the sender."""
        if self.is_channel_message:
            return self.origin_target.strip()
        return self.sender


@dataclass
class ReplyPayload:
    """A reply produced by a handler.

    An empty destination means "default channel" for the broadcast sink
    and "no answer" for the explicit-target sink.
    """

    message: str
    destination: str = ""
