import logging
logger = logging.getLogger(__name__)

import time
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

from core.errors import AgentUnavailable
from core.staging.store import TransientFileStore
from .protocol import (
	FileArrival, FileMessage, InboundMessage, MalformedMessage,
	dumps, parse_inbound,
)

MessageHandler = Callable[[InboundMessage], None]


class AgentConnection(Protocol):
	async def send_text(self, data: str) -> None: ...


def _peer(conn: Any) -> str:
	client = getattr(conn, "client", None)
	if client is None:
		return type(conn).__name__
	return f"{getattr(client, 'host', '?')}:{getattr(client, 'port', '?')}"


class AgentChannel:
	"""
	The single active connection to the filesystem agent.

	A new connection replaces the old one without any handover: requests that
	were sent on the old connection simply run out their timeout. Inbound
	frames go through `receive()`, which stages file payloads before telling
	the registered handlers about them.
	"""
	def __init__(self, store: TransientFileStore):
		self.store = store
		self._conn: Optional[AgentConnection] = None
		self._handlers: List[MessageHandler] = []
		self.connected_at: Optional[float] = None

	@property
	def is_open(self) -> bool:
		return self._conn is not None

	def connect(self, conn: AgentConnection) -> None:
		prev = self._conn
		self._conn = conn
		self.connected_at = time.time()
		if prev is not None and prev is not conn:
			logger.warning("agent.superseded", extra={"old_peer": _peer(prev), "peer": _peer(conn)})
		logger.info("agent.connect", extra={"peer": _peer(conn)})

	def disconnect(self, conn: AgentConnection) -> bool:
		"""Forget `conn` if it is still the active one. A superseded connection closing late is ignored."""
		if self._conn is not conn:
			logger.debug("agent.disconnect.stale", extra={"peer": _peer(conn)})
			return False
		self._conn = None
		self.connected_at = None
		logger.info("agent.disconnect", extra={"peer": _peer(conn)})
		return True

	async def send(self, command: Dict[str, Any]) -> None:
		conn = self._conn
		if conn is None:
			raise AgentUnavailable()
		text = dumps(command)
		try:
			await conn.send_text(text)
		except Exception as e:
			logger.warning("agent.send.error", extra={"cmd": command.get("type"), "err": repr(e)})
			self.disconnect(conn)
			raise AgentUnavailable(f"Agent send failed: {e}") from e
		logger.debug("agent.send", extra={"cmd": command.get("type"), "target": command.get("path"), "json_bytes": len(text)})

	# ---------- inbound ----------
	def on_message(self, handler: MessageHandler) -> None:
		if handler not in self._handlers:
			self._handlers.append(handler)

	def off_message(self, handler: MessageHandler) -> None:
		try:
			self._handlers.remove(handler)
		except ValueError:
			pass

	def receive(self, raw: Union[str, bytes]) -> Optional[InboundMessage]:
		"""Handle one inbound frame. Never raises; bad frames are logged and dropped."""
		try:
			msg = parse_inbound(raw)
		except MalformedMessage as e:
			logger.warning("agent.message.malformed", extra={"err": str(e)[:240], "raw_len": len(raw or "")})
			return None
		if msg is None:
			logger.debug("agent.message.ignored", extra={"raw_len": len(raw)})
			return None

		if isinstance(msg, FileMessage):
			try:
				data = msg.payload()
			except MalformedMessage as e:
				logger.warning("agent.message.malformed", extra={"err": str(e), "path": msg.path})
				return None
			try:
				location = self.store.write(msg.path, data)
			except OSError:
				logger.exception("agent.file.stage_error", extra={"path": msg.path})
				return None
			out: InboundMessage = FileArrival(path=msg.path, location=location)
		else:
			out = msg
			logger.info("agent.dir_list", extra={"dir": msg.dir, "count": len(msg.files)})

		for handler in list(self._handlers):
			try:
				handler(out)
			except Exception:
				logger.exception("agent.handler.error", extra={"handler": getattr(handler, "__qualname__", repr(handler))})
		return out
