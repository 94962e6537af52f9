"""Shared fixtures: a fake IRC connection and a ready-to-use config."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from chanbot.irc_client import CALLBACK_KINDS
from chanbot.models import IncomingMessage


class FakeConnection:
    """Stands in for IRCConnection; records every outbound command."""

    def __init__(self):
        self.callbacks = {kind: [] for kind in CALLBACK_KINDS}
        self.sent = []
        self.joined = []
        self.names_queries = []
        self.quit_called = False
        self.connected = False

    def add_callback(self, kind, callback):
        self.callbacks[kind].append(callback)

    async def connect(self):
        self.connected = True

    def join(self, channel, key=""):
        self.joined.append((channel, key))

    def names(self, channel):
        self.names_queries.append(channel)

    def privmsg(self, target, text):
        self.sent.append((target, text))

    def quit(self, message=""):
        self.quit_called = True

    def fire(self, kind, *args):
        for callback in self.callbacks[kind]:
            callback(*args)

    def say(self, sender, text, target="#test"):
        self.fire("message", IncomingMessage(sender, target, text, connection=self))


@pytest.fixture
def fake_connection():
    return FakeConnection()


@pytest.fixture
def bot_config(tmp_path: Path):
    config = MagicMock()
    config.irc_channel = "#test"
    config.irc_channel_key = "secret"
    config.reply_interval = 0.0
    config.roster_timeout = None
    config.max_inflight_handlers = 0
    config.database_path = tmp_path / "memo.sqlite"
    return config

