"""Routing of incoming lines to command and passive handlers.

on_incoming() is called once per line by the connection's reader. It
never waits: the matching command handler, or every passive handler,
is started as its own task and the reader moves on to the next line.
Failures inside a handler task are logged and stay inside that task.
"""

import asyncio
from typing import List, Optional, Set

import structlog

from .commands.base import HandlerEntry, HandlerRegistry
from .exceptions import ChanbotError
from .models import IncomingMessage

logger = structlog.get_logger("chanbot.dispatch")


def log_task_exception(task: asyncio.Task):
    """Log exceptions from fire-and-forget tasks instead of silently swallowing them."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc:
        logger.error("background_task_failed", error=str(exc), exc_type=type(exc).__name__)


class Dispatcher:
    """Classifies each incoming line and starts its handler tasks.

    Args:
        registry: Where command and passive handlers are looked up.
        max_inflight: Maximum number of handler bodies running at once.
            0 means unbounded. Tasks are always created immediately;
            the bound only delays when their handler starts running.
    """

    def __init__(self, registry: HandlerRegistry, max_inflight: int = 0):
        self.registry = registry
        self._semaphore: Optional[asyncio.Semaphore] = (
            asyncio.Semaphore(max_inflight) if max_inflight > 0 else None
        )
        self._tasks: Set[asyncio.Task] = set()

    @property
    def inflight(self) -> int:
        """Number of handler tasks not finished yet."""
        return len(self._tasks)

    def on_incoming(self, msg: IncomingMessage) -> List[asyncio.Task]:
        """Dispatch one line.

        Returns:
            The handler tasks that were started (empty for blank text).
        """
        fields = msg.text.split()
        if not fields:
            return []

        trigger = fields[0]
        entry = self.registry.get(trigger)
        if entry is not None:
            logger.debug("command_dispatched", trigger=trigger, sender=msg.sender)
            return [self._spawn(self._run_command(trigger, entry, msg))]

        passive = self.registry.passive_handlers
        logger.debug("passive_dispatched", handlers=len(passive), sender=msg.sender)
        return [
            self._spawn(self._run_passive(index, entry, msg))
            for index, entry in enumerate(passive)
        ]

    async def drain(self) -> None:
        """Wait for every handler task started so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(log_task_exception)
        return task

    async def _run_command(
        self, trigger: str, entry: HandlerEntry, msg: IncomingMessage
    ) -> bool:
        try:
            handled = await self._call(entry, msg)
        except Exception as e:
            self._log_failure(e, trigger=trigger, sender=msg.sender)
            return False
        if not handled:
            logger.debug("command_not_handled", trigger=trigger, sender=msg.sender)
        return bool(handled)

    async def _run_passive(
        self, index: int, entry: HandlerEntry, msg: IncomingMessage
    ) -> None:
        try:
            await self._call(entry, msg)
        except Exception as e:
            self._log_failure(e, passive_index=index, sender=msg.sender)

    async def _call(self, entry: HandlerEntry, msg: IncomingMessage):
        if self._semaphore is None:
            return await entry.handler(msg, entry.reply_sink)
        async with self._semaphore:
            return await entry.handler(msg, entry.reply_sink)

    @staticmethod
    def _log_failure(exc: Exception, **fields) -> None:
        if isinstance(exc, ChanbotError):
            logger.error(
                "handler_failed",
                error=exc.message,
                exc_type=type(exc).__name__,
                category=exc.category.value,
                retryable=exc.is_retryable,
                module=exc.module,
                **{**exc.context, **fields},
            )
        else:
            logger.error(
                "handler_failed",
                error=str(exc),
                exc_type=type(exc).__name__,
                exc_info=exc,
                **fields,
            )
