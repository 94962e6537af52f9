"""Outbound flood control.

IRC servers disconnect clients that send too fast, so every reply goes
through a single ReplyThrottle that paces writes to the network.
"""

import asyncio
import inspect
import time
from typing import Any, Callable

import structlog

logger = structlog.get_logger("chanbot.irc")


class ReplyThrottle:
    """Mutual-exclusion and pacing gate in front of the network writer.

    Concurrent callers may all await send(); writes happen one at a
    time, each at least ``min_interval`` seconds after the previous
    write completed.

    Args:
        write: ``(target, text)`` callable performing the network write.
            May be a plain function or a coroutine function.
        min_interval: Minimum seconds between two writes.
        clock: Monotonic time source, overridable for tests.
    """

    def __init__(
        self,
        write: Callable[[str, str], Any],
        min_interval: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._write = write
        self.min_interval = min_interval
        self._clock = clock
        self._lock = asyncio.Lock()
        self._last_sent: float = clock()

    @property
    def last_sent(self) -> float:
        """Clock value recorded when the last write completed."""
        return self._last_sent

    async def send(self, destination: str, message: str) -> None:
        """Write a message to ``destination``, one paced line at a time.

        Newlines are not allowed inside an IRC line, so a multi-line
        message becomes several writes. Blank lines are skipped. The lines
        of one message are written back to back; other senders wait until
        the whole message is out.
        """
        lines = [line for line in message.splitlines() if line.strip()]
        if not lines:
            return
        async with self._lock:
            for line in lines:
                await self._send_line(destination, line)

    async def _send_line(self, destination: str, line: str) -> None:
        # Caller holds self._lock
        elapsed = self._clock() - self._last_sent
        if elapsed < self.min_interval:
            delay = self.min_interval - elapsed
            logger.debug("reply_throttled", target=destination, delay=round(delay, 3))
            await asyncio.sleep(delay)
        result = self._write(destination, line)
        if inspect.isawaitable(result):
            await result
        self._last_sent = self._clock()
