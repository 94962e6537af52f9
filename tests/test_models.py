"""Tests for message types, error formatting and log scrubbing."""

from datetime import datetime, timezone

from chanbot.exceptions import DatabaseError, TransportError
from chanbot.logging_config import sanitize_secrets
from chanbot.memo.models import Memo
from chanbot.models import IncomingMessage


def test_channel_message_replies_to_channel():
    msg = IncomingMessage("Alice", "#chan", "hi")
    assert msg.is_channel_message
    assert msg.reply_target == "#chan"


def test_direct_message_replies_to_sender():
    msg = IncomingMessage("Alice", "chanbot", "hi")
    assert not msg.is_channel_message
    assert msg.reply_target == "Alice"


def test_fields_split_on_any_whitespace():
    assert IncomingMessage("A", "#c", " \t!m  Bob\thello  ").fields == ["!m", "Bob", "hello"]


def test_memo_display_date_format():
    memo = Memo(
        user_to="Bob", user_from="Alice", message="hi",
        created_at=datetime(2026, 3, 4, 5, 6, tzinfo=timezone.utc),
    )
    expected = memo.created_at.astimezone().strftime("%d/%m/%Y @ %H:%M")
    assert memo.display_date == expected


def test_error_str_includes_module_and_context():
    err = DatabaseError("Could not save memo", operation="insert", table="Memo", user_to="Bob")
    text = str(err)
    assert "Could not save memo" in text
    assert "[module=database]" in text
    assert "user_to=Bob" in text
    assert err.is_retryable


def test_transport_error_keeps_server():
    err = TransportError("refused", server="irc.example.org")
    assert err.server == "irc.example.org"
    assert err.module == "irc"


def test_sanitize_secrets_masks_irc_passwords():
    event = {
        "event": "raw_line",
        "line": "PRIVMSG NickServ :IDENTIFY hunter2",
        "lines": ["PASS s3cret", "JOIN #room roomkey"],
    }
    scrubbed = sanitize_secrets(None, "info", event)
    assert "hunter2" not in scrubbed["line"]
    assert "s3cret" not in scrubbed["lines"][0]
    assert "roomkey" not in scrubbed["lines"][1]
    assert scrubbed["lines"][1].startswith("JOIN #room ")
