import logging
logger = logging.getLogger(__name__)

import asyncio, time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from core.agent.channel import AgentChannel
from core.agent.protocol import FileArrival, InboundMessage, request_file
from core.errors import AgentUnavailable, FetchTimeout
from .matcher import logical_path, match_arrival


@dataclass
class PendingFetch:
	path: str
	future: "asyncio.Future[Path]"
	registered_at: float = field(default_factory=time.monotonic)

	def resolve(self, location: Path) -> bool:
		if self.future.done():
			return False
		self.future.set_result(location)
		return True


class ResponseCorrelator:
	"""
	Pairs `file` arrivals with the fetches waiting for them.

	Every pending fetch sees every arrival and claims the first one that
	matches it (see matcher.py for the rule chain). A fetch leaves the pending
	list when it is matched or when its deadline passes, whichever is first.
	"""
	def __init__(self, channel: AgentChannel, timeout: float = 60.0):
		self.channel = channel
		self.timeout = timeout
		self._pending: List[PendingFetch] = []
		channel.on_message(self._on_message)

	@property
	def pending_count(self) -> int:
		return len(self._pending)

	def _on_message(self, msg: InboundMessage) -> None:
		if isinstance(msg, FileArrival):
			self.offer(msg)

	def offer(self, arrival: FileArrival) -> int:
		"""Let every pending fetch evaluate `arrival`. Returns how many claimed it."""
		claimed = 0
		for pending in list(self._pending):
			rule = match_arrival(pending.path, arrival.path)
			if rule is None:
				continue
			self._forget(pending)
			if pending.resolve(arrival.location):
				claimed += 1
				logger.info("fetch.matched", extra={
					"requested": pending.path, "arrived": arrival.path, "rule": rule.value,
					"waited_ms": int((time.monotonic() - pending.registered_at) * 1000),
				})
		if not claimed:
			logger.debug("fetch.unclaimed", extra={"arrived": arrival.path})
		elif claimed > 1:
			logger.warning("fetch.multi_claim", extra={"arrived": arrival.path, "claimed": claimed})
		return claimed

	def _forget(self, pending: PendingFetch) -> None:
		try:
			self._pending.remove(pending)
		except ValueError:
			pass

	async def fetch_file(self, dir: str, filename: str, timeout: Optional[float] = None) -> Path:
		"""
		Ask the agent for one file and wait for it to be staged.
		Returns the staged location. Raises AgentUnavailable or FetchTimeout.
		"""
		path = logical_path(dir, filename)
		if not self.channel.is_open:
			raise AgentUnavailable()

		loop = asyncio.get_running_loop()
		pending = PendingFetch(path=path, future=loop.create_future())
		# listen before sending so an immediate answer is not lost
		self._pending.append(pending)
		try:
			await self.channel.send(request_file(path))
			logger.info("fetch.requested", extra={"requested": path})
			wait = self.timeout if timeout is None else timeout
			try:
				return await asyncio.wait_for(pending.future, wait)
			except asyncio.TimeoutError:
				logger.warning("fetch.timeout", extra={"requested": path, "timeout": wait})
				raise FetchTimeout() from None
		finally:
			self._forget(pending)
			if not pending.future.done():
				pending.future.cancel()
