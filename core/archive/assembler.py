import logging
logger = logging.getLogger(__name__)

import asyncio
import os, time, zipfile
from pathlib import Path
from typing import AsyncIterator, BinaryIO, IO, List, Optional

from core.correlation.correlator import ResponseCorrelator
from core.errors import ListingNotLoaded, RelayError
from core.listing.cache import DirectoryListingCache
from core.utils import base_name, human_bytes

CHUNK = 1024 * 1024


class _ChunkSink:
	"""
	Write-only target for ZipFile. It has no tell()/seek(), so zipfile falls
	back to streaming mode (data descriptors after each entry).
	"""
	def __init__(self):
		self._buf = bytearray()
		self.total = 0

	def write(self, data) -> int:
		self._buf += data
		self.total += len(data)
		return len(data)

	def flush(self) -> None:
		pass

	def drain(self) -> bytes:
		data = bytes(self._buf)
		self._buf.clear()
		return data


class ArchiveStream:
	"""
	Zip bytes for one directory, produced while the files are fetched.

	Files are requested one at a time; the next request is only sent once the
	previous one was matched, skipped or timed out. A file that cannot be
	fetched is left out and the archive carries on.
	"""
	def __init__(self, dir: str, files: List[str], correlator: ResponseCorrelator,
				 compresslevel: int = 9, chunk_size: int = CHUNK):
		self.dir = dir
		self.files = list(files)
		self.correlator = correlator
		self.compresslevel = compresslevel
		self.chunk_size = chunk_size
		self.added: List[str] = []
		self.skipped: List[str] = []

	def __aiter__(self) -> AsyncIterator[bytes]:
		return self._produce()

	async def _fetch(self, name: str) -> Optional[Path]:
		try:
			logger.info("archive.entry.fetch", extra={"dir": self.dir, "entry": name})
			return await self.correlator.fetch_file(self.dir, name)
		except RelayError as e:
			logger.warning("archive.entry.skip", extra={"dir": self.dir, "entry": name, "err": e.detail})
		except Exception:
			logger.exception("archive.entry.error", extra={"dir": self.dir, "entry": name})
		self.skipped.append(name)
		return None

	def _pump(self, src: BinaryIO, dst: IO[bytes]) -> int:
		chunk = src.read(self.chunk_size)
		if chunk:
			dst.write(chunk)
		return len(chunk)

	async def _deflate(self, zf: zipfile.ZipFile, sink: _ChunkSink, src: BinaryIO, arcname: str) -> AsyncIterator[bytes]:
		# reading and compressing run in the executor, one chunk at a time
		loop = asyncio.get_running_loop()
		size = os.fstat(src.fileno()).st_size
		with zf.open(arcname, "w", force_zip64=size * 1.05 > zipfile.ZIP64_LIMIT) as dst:
			while await loop.run_in_executor(None, self._pump, src, dst):
				data = sink.drain()
				if data:
					yield data
		data = sink.drain()
		if data:
			yield data

	async def _produce(self) -> AsyncIterator[bytes]:
		t0 = time.perf_counter()
		sink = _ChunkSink()
		logger.info("archive.begin", extra={"dir": self.dir, "count": len(self.files)})
		try:
			with zipfile.ZipFile(sink, mode="w", compression=zipfile.ZIP_DEFLATED,
								 compresslevel=self.compresslevel) as zf:
				for name in self.files:
					location = await self._fetch(name)
					if location is None:
						continue
					# staged files stay on disk here; the staging sweeper removes them
					try:
						src = open(location, "rb")
					except FileNotFoundError:
						logger.warning("archive.entry.vanished", extra={"dir": self.dir, "entry": name, "staged": str(location)})
						self.skipped.append(name)
						continue
					with src:
						async for data in self._deflate(zf, sink, src, base_name(name)):
							yield data
					self.added.append(name)
			tail = sink.drain()
			if tail:
				yield tail
		except Exception:
			logger.exception("archive.abort", extra={"dir": self.dir, "sent": human_bytes(sink.total)})
			raise
		logger.info("archive.end", extra={
			"dir": self.dir, "added": len(self.added), "skipped": len(self.skipped),
			"size": human_bytes(sink.total), "dur_ms": int((time.perf_counter() - t0) * 1000),
		})


class ArchiveAssembler:
	def __init__(self, listings: DirectoryListingCache, correlator: ResponseCorrelator,
				 compresslevel: int = 9):
		self.listings = listings
		self.correlator = correlator
		self.compresslevel = compresslevel

	def open(self, dir: str) -> ArchiveStream:
		"""Archive stream over the cached listing of `dir`. Never asks the agent for a listing."""
		files = self.listings.peek(dir)
		if not files:
			raise ListingNotLoaded()
		return ArchiveStream(dir, files, self.correlator, compresslevel=self.compresslevel)

	@staticmethod
	def archive_name(dir: str) -> str:
		return f"{base_name(dir) or 'archive'}.zip"
