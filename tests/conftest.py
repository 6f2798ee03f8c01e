import asyncio
import base64
import json
import os
import tempfile

# keep log files and staged uploads out of the working tree
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="relay_logs_"))
os.environ.setdefault("LOG_LEVEL_CONSOLE", "WARNING")
os.environ.setdefault("RELAY_UPLOAD_DIR", tempfile.mkdtemp(prefix="relay_uploads_"))
os.environ.setdefault("RELAY_SWEEP_INTERVAL", "0")

import pytest

from core.context import RelayContext, RelaySettings


def file_frame(path, data: bytes) -> str:
    return json.dumps({"type": "file", "path": path, "content": base64.b64encode(data).decode()})


def dir_frame(dir, files) -> str:
    return json.dumps({"type": "dir_list", "dir": dir, "files": list(files)})


class FakeAgent:
    """
    Stands in for the agent's WebSocket.

    `files` maps a requested path to the bytes to send back, or to a
    (reported path, bytes) tuple when the agent should answer under a
    different path. Answers are fed back through channel.receive() on the
    running loop after `delay` seconds, like frames coming off the socket.
    """

    def __init__(self, channel, files=None, listings=None, delay=0.0):
        self.channel = channel
        self.files = dict(files or {})
        self.listings = dict(listings or {})
        self.delay = delay
        self.sent = []
        self.events = []

    async def send_text(self, data: str) -> None:
        cmd = json.loads(data)
        self.sent.append(cmd)
        self.events.append(("send", cmd["path"]))
        reply = self._reply_for(cmd)
        if reply is not None:
            asyncio.get_running_loop().call_later(self.delay, self.channel.receive, reply)

    def _reply_for(self, cmd):
        if cmd["type"] == "request_file" and cmd["path"] in self.files:
            answer = self.files[cmd["path"]]
            reported, data = answer if isinstance(answer, tuple) else (cmd["path"], answer)
            return file_frame(reported, data)
        if cmd["type"] == "request_dir" and cmd["path"] in self.listings:
            return dir_frame(cmd["path"], self.listings[cmd["path"]])
        return None

    def push_file(self, path, data: bytes):
        return self.channel.receive(file_frame(path, data))

    def push_dir(self, dir, files):
        return self.channel.receive(dir_frame(dir, files))


class BrokenConnection:
    async def send_text(self, data: str) -> None:
        raise RuntimeError("socket closed")


@pytest.fixture
def settings(tmp_path):
    return RelaySettings(
        upload_dir=tmp_path / "uploads",
        listing_timeout=0.3,
        fetch_timeout=0.3,
        sweep_interval=0,
    )


@pytest.fixture
def relay(settings):
    return RelayContext.create(settings)


@pytest.fixture
def agent(relay):
    fake = FakeAgent(relay.channel)
    relay.channel.connect(fake)
    return fake
