"""Memo command handlers.

Lets a user leave a memo for someone who is away; the memo is
delivered the next time the recipient says anything.

Usage::

    !memo <nick> <message>   (alias !m)  leave a memo
    !memostat                (alias !ms) list the memos you left that are unread

Every handler finishes its database work before it emits a reply, so a
DatabaseError leaves the reply sink untouched.
"""

from typing import TYPE_CHECKING, List, Optional

import structlog

from ..commands.base import Command, ReplySink
from ..models import IncomingMessage, ReplyPayload

if TYPE_CHECKING:
    from .database import MemoDatabase

logger = structlog.get_logger("chanbot.memo")

MEMO_TRIGGERS = ("!memo", "!m")
MEMOSTAT_TRIGGERS = ("!memostat", "!ms")

HELP_MEMO = "!memo/!m <nick> <message> => Leave a memo for another user"
HELP_MEMOSTAT = "!memostat/!ms => List the unread memos you left"


class MemoCommands:
    """Handlers for the memo feature."""

    def __init__(self, db: "MemoDatabase"):
        self.db = db

    def get_commands(self) -> List[Command]:
        return [
            Command("memo", HELP_MEMO, MEMO_TRIGGERS, self.handle_memo),
            Command("memo", HELP_MEMOSTAT, MEMOSTAT_TRIGGERS, self.handle_memostat),
        ]

    async def handle_memo(
        self, msg: IncomingMessage, reply: Optional[ReplySink]
    ) -> bool:
        """Store a memo: ``!memo <nick> <message...>``.

        Returns:
            False if the line is not a well-formed memo command.
        """
        fields = msg.fields
        if len(fields) < 3 or fields[0] not in MEMO_TRIGGERS:
            return False

        user_to = fields[1]
        text = " ".join(fields[2:])
        memo = await self.db.add_memo(user_to, msg.sender, text)
        logger.info("memo_saved", memo_id=memo.id, user_from=msg.sender, user_to=user_to)

        if reply is not None:
            await reply(ReplyPayload(
                message=f"{msg.sender}: memo for {user_to} saved",
                destination=msg.sender,
            ))
        return True

    async def handle_memostat(
        self, msg: IncomingMessage, reply: Optional[ReplySink]
    ) -> bool:
        """List the sender's undelivered memos."""
        fields = msg.fields
        if not fields or fields[0] not in MEMOSTAT_TRIGGERS:
            return False

        memos = await self.db.memos_from(msg.sender)
        if reply is None:
            return True

        if not memos:
            await reply(ReplyPayload(message="No memo saved", destination=msg.sender))
            return True

        for memo in memos:
            await reply(ReplyPayload(
                message=f'Memo for {memo.user_to}: "{memo.message}" ({memo.display_date})',
                destination=msg.sender,
            ))
        return True

    async def send_memos(
        self, msg: IncomingMessage, reply: Optional[ReplySink]
    ) -> None:
        """Passive handler: deliver pending memos to whoever just spoke."""
        memos = await self.db.pop_memos_for(msg.sender)
        if not memos:
            return

        logger.info("memos_delivered", user_to=msg.sender, count=len(memos))
        if reply is None:
            return
        for memo in memos:
            await reply(ReplyPayload(
                message=(
                    f'{msg.sender}: memo from {memo.user_from} => '
                    f'"{memo.message}" ({memo.display_date})'
                ),
                destination=msg.sender,
            ))
