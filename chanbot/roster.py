"""Tracking of the privileged members (channel operators) of a channel.

The roster is refreshed with a NAMES query. The query is sent from
refresh(), but the answer arrives later on the connection's callback
path (RPL_NAMREPLY lines followed by RPL_ENDOFNAMES). Each refresh
call waits on its own future, which the callback path resolves once
the new roster is in place.
"""

import asyncio
import threading
from typing import FrozenSet, Iterable, List, Optional

import structlog

logger = structlog.get_logger("chanbot.irc")

PRIVILEGE_MARKER = "@"
# Membership prefixes a server may put in front of a nick (multi-prefix)
MEMBER_PREFIXES = "~&@%+"


def parse_privileged(names: Iterable[str], marker: str = PRIVILEGE_MARKER) -> FrozenSet[str]:
    """Return the nicks whose membership prefix contains ``marker``.

    Prefix characters are stripped from the stored names.
    """
    privileged = set()
    for name in names:
        nick = name.lstrip(MEMBER_PREFIXES)
        prefix = name[:len(name) - len(nick)]
        if nick and marker in prefix:
            privileged.add(nick)
    return frozenset(privileged)


class RosterTracker:
    """Holds the current set of privileged nicks of the primary channel.

    NAMES replies for any other channel are ignored.

    Args:
        channel: The primary channel (compared case-insensitively).
        marker: Membership prefix that marks a privileged user.
        timeout: Seconds refresh() waits for the NAMES reply. ``None``
            waits forever. On timeout the roster is emptied.
    """

    def __init__(
        self,
        channel: str,
        marker: str = PRIVILEGE_MARKER,
        timeout: Optional[float] = None,
    ):
        self.channel = channel
        self.marker = marker
        self.timeout = timeout
        self._lock = threading.Lock()
        self._roster: FrozenSet[str] = frozenset()
        self._pending: List[asyncio.Future] = []
        self._buffer: List[str] = []

    @property
    def members(self) -> FrozenSet[str]:
        with self._lock:
            return self._roster

    def is_privileged(self, nick: str) -> bool:
        return nick in self.members

    def tracks(self, channel: str) -> bool:
        return channel.lower() == self.channel.lower()

    async def refresh(self, connection, channel: str) -> FrozenSet[str]:
        """Query the channel's membership and wait for the new roster.

        Args:
            connection: Object with a ``names(channel)`` method.
            channel: Channel to query.

        Returns:
            The roster installed by the reply.

        Raises:
            ValueError: If ``channel`` is not the tracked channel.
        """
        if not self.tracks(channel):
            raise ValueError(f"Roster tracks {self.channel}, not {channel}")
        future = asyncio.get_running_loop().create_future()
        self._pending.append(future)

        logger.debug("roster_refresh_requested", channel=channel)
        connection.names(channel)

        if self.timeout is None:
            return await future

        try:
            return await asyncio.wait_for(future, self.timeout)
        except asyncio.TimeoutError:
            if future in self._pending:
                self._pending.remove(future)
            logger.warning(
                "roster_refresh_timeout", channel=channel, timeout=self.timeout
            )
            return self._replace(frozenset())

    def handle_names_reply(self, channel: str, names: str) -> None:
        """Buffer one RPL_NAMREPLY line until the end-of-names marker."""
        if not self.tracks(channel):
            return
        self._buffer.extend(names.split())

    def handle_end_of_names(self, channel: str) -> FrozenSet[str]:
        """Install the buffered membership list and wake pending refreshes.

        Returns the roster in place afterwards, unchanged for other channels.
        """
        if not self.tracks(channel):
            logger.debug("roster_reply_ignored", channel=channel)
            return self.members
        names, self._buffer = self._buffer, []
        roster = self._replace(parse_privileged(names, self.marker))
        logger.info(
            "roster_updated", channel=channel, privileged=", ".join(sorted(roster))
        )

        pending, self._pending = self._pending, []
        for future in pending:
            if not future.done():
                future.set_result(roster)
        return roster

    def apply_names(self, channel: str, names: str) -> FrozenSet[str]:
        """Apply a complete single-line membership reply."""
        self.handle_names_reply(channel, names)
        return self.handle_end_of_names(channel)

    def _replace(self, roster: FrozenSet[str]) -> FrozenSet[str]:
        with self._lock:
            self._roster = roster
        return roster
