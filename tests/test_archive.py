import asyncio
import io
import os
import time
import zipfile

import pytest

from core.agent.protocol import FileArrival
from core.archive.assembler import ArchiveAssembler
from core.errors import ListingNotLoaded


async def collect(stream) -> bytes:
    return b"".join([chunk async for chunk in stream])


def names(blob: bytes):
    with zipfile.ZipFile(io.BytesIO(blob)) as zf:
        return zf.namelist(), {n: zf.read(n) for n in zf.namelist()}


def test_archive_without_cached_listing_is_refused(relay):
    with pytest.raises(ListingNotLoaded):
        relay.archives.open("/sdcard/dl")


def test_archive_name_uses_last_segment():
    assert ArchiveAssembler.archive_name("/sdcard/dl") == "dl.zip"
    assert ArchiveAssembler.archive_name("Download/") == "Download.zip"
    assert ArchiveAssembler.archive_name("/") == "archive.zip"


@pytest.mark.asyncio
async def test_unanswered_file_is_skipped(relay, agent):
    relay.listings.store("/d", ["one.txt", "two.txt", "three.txt"])
    agent.files["/d/one.txt"] = b"1" * 5000
    agent.files["/d/three.txt"] = b"3"

    stream = relay.archives.open("/d")
    listing, contents = names(await collect(stream))

    assert listing == ["one.txt", "three.txt"]
    assert contents == {"one.txt": b"1" * 5000, "three.txt": b"3"}
    assert stream.skipped == ["two.txt"]


@pytest.mark.asyncio
async def test_entries_are_flattened_to_base_names(relay, agent):
    relay.listings.store("/d", ["sub/a.txt", "/abs/dir/b.txt"])
    agent.files["/d/sub/a.txt"] = b"a"
    agent.files["/abs/dir/b.txt"] = b"b"

    listing, _ = names(await collect(relay.archives.open("/d")))
    assert listing == ["a.txt", "b.txt"]


@pytest.mark.asyncio
async def test_staged_files_are_left_for_the_sweeper(relay, agent):
    relay.listings.store("/d", ["a.txt"])
    agent.files["/d/a.txt"] = b"a"
    await collect(relay.archives.open("/d"))
    assert (relay.store.root / "_d_a.txt").exists()


@pytest.mark.asyncio
async def test_fetches_are_strictly_sequential(relay, agent):
    relay.listings.store("/d", ["a.txt", "b.txt", "c.txt"])
    agent.files["/d/a.txt"] = b"a"
    agent.files["/d/c.txt"] = b"c"
    agent.delay = 0.02

    fetch = relay.correlator.fetch_file

    async def recording_fetch(dir, name, timeout=None):
        try:
            return await fetch(dir, name, timeout)
        finally:
            agent.events.append(("resolved", f"{dir}/{name}"))

    relay.correlator.fetch_file = recording_fetch
    await collect(relay.archives.open("/d"))

    assert agent.events == [
        ("send", "/d/a.txt"), ("resolved", "/d/a.txt"),
        ("send", "/d/b.txt"), ("resolved", "/d/b.txt"),
        ("send", "/d/c.txt"), ("resolved", "/d/c.txt"),
    ]


@pytest.mark.asyncio
async def test_agent_leaving_mid_archive_still_finishes_the_zip(relay, agent):
    relay.listings.store("/d", ["a.txt", "b.txt"])
    agent.files["/d/a.txt"] = b"a"

    def drop_agent(msg):
        if isinstance(msg, FileArrival):
            relay.channel.disconnect(agent)

    relay.channel.on_message(drop_agent)
    stream = relay.archives.open("/d")
    listing, _ = names(await collect(stream))

    assert listing == ["a.txt"]
    assert stream.skipped == ["b.txt"]


@pytest.mark.asyncio
async def test_vanished_staged_file_is_skipped(relay, agent):
    relay.listings.store("/d", ["a.txt", "b.txt"])
    agent.files["/d/a.txt"] = b"a"
    agent.files["/d/b.txt"] = b"b"

    def steal(msg):
        # e.g. a concurrent single-file view consumed it first
        if isinstance(msg, FileArrival) and msg.path.endswith("a.txt"):
            msg.location.unlink()

    relay.channel.on_message(steal)
    stream = relay.archives.open("/d")
    listing, _ = names(await collect(stream))

    assert listing == ["b.txt"]
    assert stream.skipped == ["a.txt"]
    assert stream.added == ["b.txt"]


@pytest.mark.asyncio
async def test_compression_leaves_the_event_loop_responsive(relay):
    payload = os.urandom(8 * 1024 * 1024)
    location = relay.store.write("/d/big.bin", payload)
    relay.listings.store("/d", ["big.bin"])

    async def staged_fetch(dir, name, timeout=None):
        return location

    relay.correlator.fetch_file = staged_fetch

    ticks = []
    done = asyncio.Event()

    async def ticker():
        while not done.is_set():
            ticks.append(time.perf_counter())
            await asyncio.sleep(0.002)

    task = asyncio.create_task(ticker())
    t0 = time.perf_counter()
    try:
        blob = await collect(relay.archives.open("/d"))
    finally:
        elapsed = time.perf_counter() - t0
        done.set()
        await task

    _, contents = names(blob)
    assert contents == {"big.bin": payload}
    gaps = [b - a for a, b in zip(ticks, ticks[1:])]
    assert max(gaps) < max(0.05, elapsed / 2)
