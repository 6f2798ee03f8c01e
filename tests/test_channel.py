import json

import pytest

from conftest import BrokenConnection, FakeAgent, dir_frame, file_frame
from core.agent.protocol import DirListMessage, FileArrival
from core.errors import AgentUnavailable


def test_file_frame_is_staged_before_handlers_run(relay):
    seen = []

    def handler(msg):
        # bytes must already be on disk when we hear about them
        seen.append((msg, msg.location.read_bytes()))

    relay.channel.on_message(handler)
    out = relay.channel.receive(file_frame("/sdcard/dl/a.jpg", b"\x89PNG"))

    assert isinstance(out, FileArrival)
    assert out.location.name == "_sdcard_dl_a.jpg"
    assert seen == [(out, b"\x89PNG")]


def test_dir_list_frame_reaches_handlers_in_order(relay):
    seen = []
    relay.channel.on_message(seen.append)
    relay.channel.receive(dir_frame("/sdcard/dl", ["b.jpg", "a.jpg", "b.jpg"]))
    assert seen == [DirListMessage(dir="/sdcard/dl", files=["b.jpg", "a.jpg", "b.jpg"])]


@pytest.mark.parametrize("raw", [
    "not json",
    "[1, 2, 3]",
    json.dumps({"type": "file", "path": "/a"}),
    json.dumps({"type": "file", "path": "", "content": ""}),
    json.dumps({"type": "file", "path": "/a", "content": "abc"}),
    json.dumps({"type": "dir_list", "dir": "/a"}),
    json.dumps({"type": "dir_list", "dir": "/a", "files": "a.jpg"}),
    json.dumps({"type": ["file"]}),
    b"\xff\xfe",
])
def test_malformed_frames_are_dropped(relay, raw):
    seen = []
    relay.channel.on_message(seen.append)
    assert relay.channel.receive(raw) is None
    assert seen == []


def test_unknown_kinds_are_ignored(relay):
    seen = []
    relay.channel.on_message(seen.append)
    assert relay.channel.receive(json.dumps({"type": "ping"})) is None
    assert seen == []


def test_failing_handler_does_not_stop_the_others(relay):
    seen = []

    def boom(msg):
        raise RuntimeError("handler bug")

    relay.channel.on_message(boom)
    relay.channel.on_message(seen.append)
    relay.channel.receive(dir_frame("/d", ["a"]))
    assert len(seen) == 1


def test_binary_frames_are_accepted(relay):
    out = relay.channel.receive(dir_frame("/d", ["a"]).encode())
    assert isinstance(out, DirListMessage)


@pytest.mark.asyncio
async def test_send_without_agent_fails(relay):
    assert not relay.channel.is_open
    with pytest.raises(AgentUnavailable):
        await relay.channel.send({"type": "request_dir", "path": "/d"})


@pytest.mark.asyncio
async def test_new_connection_supersedes_the_old_one(relay):
    first = FakeAgent(relay.channel)
    second = FakeAgent(relay.channel)
    relay.channel.connect(first)
    relay.channel.connect(second)

    await relay.channel.send({"type": "request_dir", "path": "/d"})
    assert first.sent == []
    assert second.sent == [{"type": "request_dir", "path": "/d"}]

    # the superseded socket closing late must not drop its replacement
    assert relay.channel.disconnect(first) is False
    assert relay.channel.is_open
    assert relay.channel.disconnect(second) is True
    assert not relay.channel.is_open


@pytest.mark.asyncio
async def test_send_failure_closes_the_channel(relay):
    relay.channel.connect(BrokenConnection())
    with pytest.raises(AgentUnavailable):
        await relay.channel.send({"type": "request_file", "path": "/a"})
    assert not relay.channel.is_open


def test_wrapped_base64_is_accepted(relay):
    frame = json.dumps({"type": "file", "path": "/a/b.txt", "content": "aGVs\nbG8="})
    out = relay.channel.receive(frame)
    assert out.location.read_bytes() == b"hello"


def test_removed_handler_hears_nothing(relay):
    seen = []
    relay.channel.on_message(seen.append)
    relay.channel.off_message(seen.append)
    relay.channel.off_message(seen.append)
    relay.channel.receive(dir_frame("/d", ["a"]))
    assert seen == []
