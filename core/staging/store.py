import logging
logger = logging.getLogger(__name__)

import os, time
from pathlib import Path
from typing import Iterator, Union

from core.utils import human_bytes, replace_separators

CHUNK = 1024 * 1024


class TransientFileStore:
	"""
	Staging area for files pushed by the agent.
	Layout: <root>/<agent path with every / and \\ replaced by _>

	Files are written once and consumed either by the single-file view (read
	then deleted) or by the archive path (read, left for the sweeper).
	"""
	def __init__(self, root: Union[str, Path]):
		self.root = Path(root)

	def _ensure_root(self) -> None:
		self.root.mkdir(parents=True, exist_ok=True)

	@staticmethod
	def safe_name(path: str) -> str:
		return replace_separators(path, "_")

	def location_for(self, path: str) -> Path:
		return self.root / self.safe_name(path)

	def write(self, path: str, data: bytes) -> Path:
		"""Stage `data` for `path` and return where it landed. Overwrites."""
		self._ensure_root()
		dest = self.location_for(path)
		with open(dest, "wb") as f:
			f.write(data)
		logger.info("staging.write", extra={"path": path, "staged": dest.name, "size": human_bytes(len(data))})
		return dest

	def iter_chunks(self, location: Union[str, Path], chunk_size: int = CHUNK) -> Iterator[bytes]:
		with open(location, "rb") as f:
			for chunk in iter(lambda: f.read(chunk_size), b""):
				yield chunk

	def consume(self, location: Union[str, Path], chunk_size: int = CHUNK) -> Iterator[bytes]:
		"""
		Yield the staged bytes, then delete the file. The delete is attempted
		even when the consumer stops early or fails mid-way.
		"""
		try:
			yield from self.iter_chunks(location, chunk_size)
		finally:
			self.discard(location)

	def discard(self, location: Union[str, Path]) -> None:
		try:
			os.remove(location)
		except OSError:
			pass

	def sweep(self, max_age: float, now: float | None = None) -> int:
		"""Delete staged files older than `max_age` seconds. Returns how many went."""
		if not self.root.is_dir():
			return 0
		cutoff = (now if now is not None else time.time()) - max_age
		removed = 0
		for entry in os.scandir(self.root):
			if not entry.is_file():
				continue
			try:
				if entry.stat().st_mtime <= cutoff:
					os.remove(entry.path)
					removed += 1
			except FileNotFoundError:
				continue
		if removed:
			logger.info("staging.sweep", extra={"removed": removed, "max_age": max_age})
		return removed
