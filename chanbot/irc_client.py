"""IRC transport built on the ``irc`` library's asyncio reactor.

IRCConnection hides the library's event objects from the rest of the
bot: callbacks registered with add_callback() receive IncomingMessage
instances and plain strings.

Callback kinds:
    message:    (msg: IncomingMessage) for every PRIVMSG, channel or direct
    welcome:    () once the server accepted the registration (001)
    namreply:   (channel: str, names: str) for each RPL_NAMREPLY (353)
    endofnames: (channel: str) on RPL_ENDOFNAMES (366)
    disconnect: () when the connection is closed
"""

import asyncio
from typing import Callable, Dict, List, Optional

import irc.client
import irc.client_aio
import irc.connection
import structlog
from jaraco.stream import buffer

from .exceptions import TransportError
from .models import IncomingMessage

logger = structlog.get_logger("chanbot.irc")

CALLBACK_KINDS = ("message", "welcome", "namreply", "endofnames", "disconnect")


class IRCConnection:
    """A single client connection to an IRC server.

    Args:
        server: Server hostname.
        port: Server port.
        nick: Nickname (also used as username and real name).
        use_tls: Wrap the socket in TLS.
        password: Optional server password.
    """

    def __init__(
        self,
        server: str,
        port: int,
        nick: str,
        use_tls: bool = True,
        password: Optional[str] = None,
    ):
        self.server = server
        self.port = port
        self.nick = nick
        self.use_tls = use_tls
        self._password = password
        self._callbacks: Dict[str, List[Callable]] = {kind: [] for kind in CALLBACK_KINDS}
        self._reactor: Optional[irc.client_aio.AioReactor] = None
        self._conn: Optional[irc.client_aio.AioConnection] = None

    def add_callback(self, kind: str, callback: Callable) -> None:
        """Register a callback for one of CALLBACK_KINDS."""
        if kind not in self._callbacks:
            raise ValueError(f"Unknown callback kind: {kind}")
        self._callbacks[kind].append(callback)

    @property
    def connected(self) -> bool:
        return self._conn is not None and self._conn.is_connected()

    async def connect(self) -> None:
        """Open the connection and register with the server.

        Raises:
            TransportError: If the server cannot be reached.
        """
        self._reactor = irc.client_aio.AioReactor(loop=asyncio.get_running_loop())
        for event_type, handler in (
            ("pubmsg", self._on_privmsg),
            ("privmsg", self._on_privmsg),
            ("welcome", self._on_welcome),
            ("namreply", self._on_namreply),
            ("endofnames", self._on_endofnames),
            ("disconnect", self._on_disconnect),
        ):
            self._reactor.add_global_handler(event_type, handler)

        factory = (
            irc.connection.AioFactory(ssl=True)
            if self.use_tls
            else irc.connection.AioFactory()
        )
        self._conn = self._reactor.server()
        # Non-UTF-8 input is decoded with replacement characters
        self._conn.buffer_class = buffer.LenientDecodingLineBuffer
        logger.info(
            "irc_connecting", server=self.server, port=self.port, tls=self.use_tls
        )
        try:
            await self._conn.connect(
                self.server,
                self.port,
                self.nick,
                password=self._password,
                connect_factory=factory,
            )
        except (irc.client.ServerConnectionError, OSError) as e:
            raise TransportError(
                f"Could not connect to {self.server}:{self.port}",
                server=self.server,
                cause=str(e),
            ) from e

    def join(self, channel: str, key: str = "") -> None:
        logger.info("irc_join", channel=channel)
        self._require().join(channel, key)

    def names(self, channel: str) -> None:
        self._require().names([channel])

    def privmsg(self, target: str, text: str) -> None:
        self._require().privmsg(target, text)

    def quit(self, message: str = "") -> None:
        """Send QUIT; the server closes the connection afterwards."""
        if self.connected:
            logger.info("irc_quit", server=self.server)
            self._conn.quit(message)

    def _require(self) -> irc.client_aio.AioConnection:
        if self._conn is None:
            raise TransportError("Not connected", server=self.server)
        return self._conn

    def _fire(self, kind: str, *args) -> None:
        for callback in self._callbacks[kind]:
            try:
                callback(*args)
            except Exception as e:
                logger.error(
                    "irc_callback_error", kind=kind, error=str(e),
                    exc_type=type(e).__name__,
                )

    # irc library event handlers: (connection, event)

    def _on_privmsg(self, connection, event) -> None:
        text = event.arguments[0] if event.arguments else ""
        msg = IncomingMessage(
            sender=event.source.nick,
            origin_target=event.target,
            text=text,
            connection=self,
        )
        self._fire("message", msg)

    def _on_welcome(self, connection, event) -> None:
        logger.info("irc_registered", server=self.server, nick=connection.get_nickname())
        self._fire("welcome")

    def _on_namreply(self, connection, event) -> None:
        # arguments: [channel type, channel, space-separated names]
        if len(event.arguments) < 3:
            return
        self._fire("namreply", event.arguments[1], event.arguments[2])

    def _on_endofnames(self, connection, event) -> None:
        if not event.arguments:
            return
        self._fire("endofnames", event.arguments[0])

    def _on_disconnect(self, connection, event) -> None:
        logger.info("irc_disconnected", server=self.server)
        self._fire("disconnect")
