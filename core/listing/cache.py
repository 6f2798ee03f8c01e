import logging
logger = logging.getLogger(__name__)

import asyncio
from typing import Dict, List, Optional, Set

from core.agent.channel import AgentChannel
from core.agent.protocol import DirListMessage, InboundMessage, request_dir
from core.errors import ListingTimeout


class DirectoryListingCache:
	"""
	Last listing the agent reported for each directory, kept until it is
	overwritten. Entries are replaced wholesale and never merged or sorted.

	An empty listing counts as "not arrived yet" unless `accept_empty` is set,
	so by default a genuinely empty directory ends in ListingTimeout.
	"""
	def __init__(self, channel: AgentChannel, timeout: float = 15.0, accept_empty: bool = False):
		self.channel = channel
		self.timeout = timeout
		self.accept_empty = accept_empty
		self._entries: Dict[str, List[str]] = {}
		self._waiters: Dict[str, Set[asyncio.Event]] = {}
		channel.on_message(self._on_message)

	def _on_message(self, msg: InboundMessage) -> None:
		if isinstance(msg, DirListMessage):
			self.store(msg.dir, msg.files)

	def store(self, dir: str, files: List[str]) -> None:
		self._entries[dir] = list(files)
		for ev in self._waiters.get(dir, ()):
			ev.set()

	def peek(self, dir: str) -> Optional[List[str]]:
		"""Cached non-empty listing for `dir`, or None. Sends nothing."""
		files = self._entries.get(dir)
		return list(files) if files else None

	def _ready(self, dir: str) -> Optional[List[str]]:
		files = self._entries.get(dir)
		if files is None or (not files and not self.accept_empty):
			return None
		return list(files)

	async def request_listing(self, dir: str) -> List[str]:
		files = self.peek(dir)
		if files is not None:
			logger.debug("listing.cached", extra={"dir": dir, "count": len(files)})
			return files
		# an empty answer is only trusted when it arrives for a request in flight
		if not self._waiters.get(dir):
			self._entries.pop(dir, None)

		ev = asyncio.Event()
		self._waiters.setdefault(dir, set()).add(ev)
		try:
			await self.channel.send(request_dir(dir))
			logger.info("listing.requested", extra={"dir": dir})

			loop = asyncio.get_running_loop()
			deadline = loop.time() + self.timeout
			while True:
				ev.clear()
				files = self._ready(dir)
				if files is not None:
					logger.info("listing.ok", extra={"dir": dir, "count": len(files)})
					return files
				remaining = deadline - loop.time()
				if remaining <= 0:
					break
				try:
					await asyncio.wait_for(ev.wait(), remaining)
				except asyncio.TimeoutError:
					break
		finally:
			waiters = self._waiters.get(dir)
			if waiters is not None:
				waiters.discard(ev)
				if not waiters:
					del self._waiters[dir]

		logger.warning("listing.timeout", extra={"dir": dir, "timeout": self.timeout})
		raise ListingTimeout()
