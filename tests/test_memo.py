"""Tests for the memo feature."""

import re
from unittest.mock import AsyncMock, patch

import pytest

from chanbot.commands.base import HandlerRegistry
from chanbot.dispatcher import Dispatcher
from chanbot.exceptions import DatabaseError
from chanbot.memo import MEMO_TRIGGERS, MEMOSTAT_TRIGGERS, MemoCommands, MemoDatabase
from chanbot.models import IncomingMessage, ReplyPayload

DATE = r"\(\d{2}/\d{2}/\d{4} @ \d{2}:\d{2}\)"


def _msg(text, sender="Sender", target="#test_channel"):
    return IncomingMessage(sender=sender, origin_target=target, text=text)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "tests.sqlite"


async def _memo_commands(db_path):
    db = MemoDatabase(db_path)
    await db.initialize()
    return MemoCommands(db)


class TestMemoCommand:

    @pytest.mark.asyncio
    async def test_memo_is_saved_and_confirmed(self, db_path):
        memo = await _memo_commands(db_path)
        sink = AsyncMock()

        handled = await memo.handle_memo(
            _msg("  \t  !memo Receiver this is a memo      "), sink
        )

        assert handled is True
        sink.assert_awaited_once_with(
            ReplyPayload(message="Sender: memo for Receiver saved", destination="Sender")
        )
        stored = await memo.db.memos_from("Sender")
        assert [(m.user_to, m.message) for m in stored] == [("Receiver", "this is a memo")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", [
        " this is not a command ",
        "!memo Receiver",
        "!memostat Receiver hello",
    ])
    async def test_non_memo_lines_are_not_handled(self, db_path, text):
        memo = await _memo_commands(db_path)
        sink = AsyncMock()

        assert await memo.handle_memo(_msg(text), sink) is False
        sink.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_memo_without_sink_still_saves(self, db_path):
        memo = await _memo_commands(db_path)

        assert await memo.handle_memo(_msg("!m Receiver hi"), None) is True
        assert len(await memo.db.memos_from("Sender")) == 1

    @pytest.mark.asyncio
    async def test_database_failure_produces_no_reply(self, db_path):
        memo = await _memo_commands(db_path)
        sink = AsyncMock()

        with patch.object(
            memo.db, "add_memo",
            AsyncMock(side_effect=DatabaseError("locked", operation="insert")),
        ):
            with pytest.raises(DatabaseError):
                await memo.handle_memo(_msg("!memo Receiver hi"), sink)

        sink.assert_not_awaited()


class TestSendMemo:

    @pytest.mark.asyncio
    async def test_memo_delivered_on_next_message(self, db_path):
        memo = await _memo_commands(db_path)
        await memo.handle_memo(_msg("!memo Receiver this is a memo"), None)

        replies = []

        async def sink(payload):
            replies.append(payload)

        await memo.send_memos(
            _msg(" this is a message to trigger the memo ", sender="Receiver"), sink
        )

        assert len(replies) == 1
        assert replies[0].destination == "Receiver"
        assert re.match(
            rf'^Receiver: memo from Sender => "this is a memo" {DATE}$',
            replies[0].message,
        )

    @pytest.mark.asyncio
    async def test_memos_are_delivered_once(self, db_path):
        memo = await _memo_commands(db_path)
        await memo.handle_memo(_msg("!memo Receiver one"), None)
        await memo.handle_memo(_msg("!memo Receiver two"), None)

        sink = AsyncMock()
        await memo.send_memos(_msg("hi", sender="Receiver"), sink)
        assert sink.await_count == 2
        messages = [c.args[0].message for c in sink.await_args_list]
        assert '"one"' in messages[0] and '"two"' in messages[1]

        sink.reset_mock()
        await memo.send_memos(_msg("hi again", sender="Receiver"), sink)
        sink.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_other_users_get_nothing(self, db_path):
        memo = await _memo_commands(db_path)
        await memo.handle_memo(_msg("!memo Receiver hi"), None)

        sink = AsyncMock()
        await memo.send_memos(_msg("hello", sender="Someone"), sink)

        sink.assert_not_awaited()
        assert len(await memo.db.memos_from("Sender")) == 1

    @pytest.mark.asyncio
    async def test_failed_delivery_sends_nothing(self, db_path):
        memo = await _memo_commands(db_path)
        sink = AsyncMock()

        with patch.object(
            memo.db, "pop_memos_for",
            AsyncMock(side_effect=DatabaseError("locked", operation="delete")),
        ):
            with pytest.raises(DatabaseError):
                await memo.send_memos(_msg("hi", sender="Receiver"), sink)

        sink.assert_not_awaited()


class TestMemoStat:

    @pytest.mark.asyncio
    async def test_no_memo_saved(self, db_path):
        memo = await _memo_commands(db_path)
        sink = AsyncMock()

        assert await memo.handle_memostat(_msg("!memostat"), sink) is True
        sink.assert_awaited_once_with(
            ReplyPayload(message="No memo saved", destination="Sender")
        )

    @pytest.mark.asyncio
    async def test_lists_own_unread_memos_in_order(self, db_path):
        memo = await _memo_commands(db_path)
        await memo.handle_memo(_msg("!m Bob first memo"), None)
        await memo.handle_memo(_msg("!m Carol second memo"), None)
        await memo.handle_memo(_msg("!m Bob not mine", sender="Other"), None)

        sink = AsyncMock()
        assert await memo.handle_memostat(_msg("!ms"), sink) is True

        messages = [c.args[0].message for c in sink.await_args_list]
        assert len(messages) == 2
        assert re.match(rf'^Memo for Bob: "first memo" {DATE}$', messages[0])
        assert re.match(rf'^Memo for Carol: "second memo" {DATE}$', messages[1])

    @pytest.mark.asyncio
    async def test_wrong_trigger_not_handled(self, db_path):
        memo = await _memo_commands(db_path)
        assert await memo.handle_memostat(_msg("!memo Bob hi"), AsyncMock()) is False


class TestMemoThroughDispatcher:

    @pytest.mark.asyncio
    async def test_memo_command_end_to_end(self, db_path):
        memo = await _memo_commands(db_path)
        registry = HandlerRegistry()
        for command in memo.get_commands():
            registry.add_command(command, AsyncMock())
        registry.register_passive(memo.send_memos, AsyncMock())
        dispatcher = Dispatcher(registry)

        assert set(MEMO_TRIGGERS) | set(MEMOSTAT_TRIGGERS) <= registry.triggers

        tasks = dispatcher.on_incoming(_msg("!m Bob hello there", sender="Alice"))
        await dispatcher.drain()

        assert tasks[0].result() is True
        stored = await memo.db.memos_from("Alice")
        assert len(stored) == 1
        assert stored[0].user_to == "Bob"
        assert stored[0].user_from == "Alice"
        assert stored[0].message == "hello there"

    @pytest.mark.asyncio
    async def test_database_error_is_contained_by_dispatcher(self, db_path):
        memo = await _memo_commands(db_path)
        sink = AsyncMock()
        registry = HandlerRegistry()
        for command in memo.get_commands():
            registry.add_command(command, sink)
        dispatcher = Dispatcher(registry)

        with patch.object(
            memo.db, "add_memo",
            AsyncMock(side_effect=DatabaseError("disk I/O error", operation="insert")),
        ):
            tasks = dispatcher.on_incoming(_msg("!memo Bob hi", sender="Alice"))
            await dispatcher.drain()

        assert tasks[0].result() is False
        sink.assert_not_awaited()


@pytest.mark.asyncio
async def test_uninitialized_database_raises_database_error(db_path):
    db = MemoDatabase(db_path)
    with pytest.raises(DatabaseError):
        await db.memos_from("Alice")
