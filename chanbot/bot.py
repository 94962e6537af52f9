"""IRC bot implementation for chanbot.

Wires the IRC connection, the handler registry, the dispatcher, the
channel roster and the reply throttle together, and drives the
connection lifecycle.

Key classes:
    BotState: Lifecycle states, in the only order they can occur.
    ChanBot: Composition root; owns every subsystem and exposes the
        two reply sinks handlers are bound to.
"""

import asyncio
from enum import Enum
from typing import FrozenSet, Optional

import structlog

from .commands.base import Command, CommandHandler, HandlerRegistry, MessageHandler, ReplySink
from .config import Config, get_config
from .dispatcher import Dispatcher, log_task_exception
from .irc_client import IRCConnection
from .models import ReplyPayload
from .roster import RosterTracker
from .throttle import ReplyThrottle

logger = structlog.get_logger("chanbot.bot")


class BotState(str, Enum):
    """Flow: CONSTRUCTED -> CONNECTED -> RUNNING -> STOPPED."""
    CONSTRUCTED = "constructed"
    CONNECTED = "connected"
    RUNNING = "running"
    STOPPED = "stopped"


class ChanBot:
    """IRC bot with a command/passive handler registry.

    The bot becomes RUNNING only after it has joined its channel and
    one roster refresh has completed. Lines are dispatched as soon as
    they arrive; handlers that depend on the roster should await
    wait_ready() first.

    Args:
        config: Configuration. Defaults to the global Config.
        connection: Transport. Defaults to an IRCConnection built from
            the configuration.
    """

    def __init__(self, config: Optional[Config] = None, connection=None):
        self.config = config or get_config()
        self.channel = self.config.irc_channel
        self.channel_key = self.config.irc_channel_key

        if connection is None:
            connection = IRCConnection(
                server=self.config.irc_server,
                port=self.config.irc_port,
                nick=self.config.irc_nick,
                use_tls=self.config.irc_use_tls,
                password=self.config.irc_password,
            )
        self.connection = connection

        self.registry = HandlerRegistry()
        self.dispatcher = Dispatcher(
            self.registry, max_inflight=self.config.max_inflight_handlers
        )
        self.roster = RosterTracker(self.channel, timeout=self.config.roster_timeout)
        self.throttle = ReplyThrottle(
            self.connection.privmsg, min_interval=self.config.reply_interval
        )

        self.state = BotState.CONSTRUCTED
        self._ready = asyncio.Event()
        self._disconnected = asyncio.Event()

        self.connection.add_callback("message", self.dispatcher.on_incoming)
        self.connection.add_callback("welcome", self._on_welcome)
        self.connection.add_callback("namreply", self._on_namreply)
        self.connection.add_callback("endofnames", self._on_endofnames)
        self.connection.add_callback("disconnect", self._on_disconnect)

    # --- Registration ---

    def add_command(self, command: Command, reply_sink: Optional[ReplySink] = None) -> None:
        """Register a command; its replies go to ``reply`` unless a sink is given."""
        self.registry.add_command(command, reply_sink or self.reply)

    def add_cmd_handler(
        self, triggers, handler: Optional[CommandHandler],
        reply_sink: Optional[ReplySink] = None,
    ) -> None:
        self.registry.register_command(triggers, handler, reply_sink or self.reply)

    def add_msg_handler(
        self, handler: Optional[MessageHandler], reply_sink: Optional[ReplySink] = None
    ) -> None:
        """Register a passive handler run on every line that is not a command."""
        self.registry.register_passive(handler, reply_sink or self.reply)

    # --- Reply sinks ---

    async def reply_to_all(self, payload: ReplyPayload) -> None:
        """Send a message to the bot's channel."""
        await self.throttle.send(self.channel, payload.message)

    async def reply(self, payload: ReplyPayload) -> None:
        """Send a message to ``payload.destination``. Empty destination sends nothing."""
        if payload.destination:
            await self.throttle.send(payload.destination, payload.message)

    # --- Roster ---

    @property
    def admins(self) -> FrozenSet[str]:
        return self.roster.members

    def is_admin(self, nick: str) -> bool:
        return self.roster.is_privileged(nick)

    async def wait_ready(self) -> None:
        """Wait until the channel is joined and the roster is loaded."""
        await self._ready.wait()

    # --- Lifecycle ---

    async def start(self) -> None:
        """Connect to the server. Joining happens once registration succeeds."""
        await self.connection.connect()

    async def run(self) -> None:
        """Connect, then process events until the connection closes."""
        await self.start()
        await self._disconnected.wait()

    async def stop(self) -> None:
        """Send QUIT. Handler tasks still running are not awaited."""
        if self.state == BotState.STOPPED:
            return
        self.connection.quit()
        self.state = BotState.STOPPED
        logger.info("bot_stopped", inflight_handlers=self.dispatcher.inflight)

    async def _join_and_sync(self) -> None:
        self.connection.join(self.channel, self.channel_key)
        self.state = BotState.CONNECTED
        logger.info("bot_connected", channel=self.channel)

        await self.roster.refresh(self.connection, self.channel)

        if self.state == BotState.CONNECTED:
            self.state = BotState.RUNNING
            self._ready.set()
            logger.info("bot_running", admins=", ".join(sorted(self.admins)))

    # --- Connection callbacks ---

    def _on_welcome(self) -> None:
        if self.state != BotState.CONSTRUCTED:
            return
        task = asyncio.get_running_loop().create_task(self._join_and_sync())
        task.add_done_callback(log_task_exception)

    def _on_namreply(self, channel: str, names: str) -> None:
        self.roster.handle_names_reply(channel, names)

    def _on_endofnames(self, channel: str) -> None:
        self.roster.handle_end_of_names(channel)

    def _on_disconnect(self) -> None:
        self._disconnected.set()
