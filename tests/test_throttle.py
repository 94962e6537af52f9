"""Tests for reply pacing."""

import asyncio
import time

import pytest

from chanbot.throttle import ReplyThrottle

INTERVAL = 0.1
# asyncio timers may fire up to one clock tick early
TOLERANCE = 0.01


class RecordingWriter:
    def __init__(self):
        self.writes = []

    def __call__(self, target, text):
        self.writes.append((time.monotonic(), target, text))


@pytest.mark.asyncio
async def test_concurrent_replies_are_spaced():
    writer = RecordingWriter()
    throttle = ReplyThrottle(writer, min_interval=INTERVAL)

    await asyncio.gather(
        throttle.send("#chan", "first"),
        throttle.send("Bob", "second"),
        throttle.send("Carol", "third"),
    )

    assert len(writer.writes) == 3
    times = [w[0] for w in writer.writes]
    for earlier, later in zip(times, times[1:]):
        assert later - earlier >= INTERVAL - TOLERANCE


@pytest.mark.asyncio
async def test_first_reply_waits_from_construction():
    writer = RecordingWriter()
    created = time.monotonic()
    throttle = ReplyThrottle(writer, min_interval=INTERVAL)

    await throttle.send("#chan", "hello")

    assert writer.writes[0][0] - created >= INTERVAL - TOLERANCE


@pytest.mark.asyncio
async def test_no_wait_when_interval_already_elapsed():
    now = [100.0]
    throttle = ReplyThrottle(lambda t, m: None, min_interval=2.0, clock=lambda: now[0])
    now[0] = 105.0

    started = time.monotonic()
    await throttle.send("#chan", "hello")

    assert time.monotonic() - started < 0.5
    assert throttle.last_sent == 105.0


@pytest.mark.asyncio
async def test_async_writer_is_awaited():
    written = []

    async def writer(target, text):
        written.append((target, text))

    throttle = ReplyThrottle(writer, min_interval=0)
    await throttle.send("Bob", "hi")

    assert written == [("Bob", "hi")]


@pytest.mark.asyncio
async def test_multiline_message_sends_one_line_per_write():
    writer = RecordingWriter()
    throttle = ReplyThrottle(writer, min_interval=0)

    await throttle.send("Bob", "line one\n\nline two\n")

    assert [(t, m) for _, t, m in writer.writes] == [("Bob", "line one"), ("Bob", "line two")]


@pytest.mark.asyncio
async def test_failed_write_releases_the_gate():
    calls = []

    def flaky(target, text):
        calls.append(text)
        if text == "bad":
            raise ConnectionError("socket closed")

    throttle = ReplyThrottle(flaky, min_interval=0)
    with pytest.raises(ConnectionError):
        await throttle.send("Bob", "bad")

    await asyncio.wait_for(throttle.send("Bob", "good"), timeout=1)
    assert calls == ["bad", "good"]


@pytest.mark.asyncio
async def test_multiline_messages_are_not_interleaved():
    writer = RecordingWriter()
    throttle = ReplyThrottle(writer, min_interval=0.02)

    await asyncio.gather(
        throttle.send("Alice", "a1\na2\na3"),
        throttle.send("Bob", "b1\nb2"),
    )

    assert [m for _, _, m in writer.writes] == ["a1", "a2", "a3", "b1", "b2"]
    times = [w[0] for w in writer.writes]
    for earlier, later in zip(times, times[1:]):
        assert later - earlier >= 0.02 - TOLERANCE
