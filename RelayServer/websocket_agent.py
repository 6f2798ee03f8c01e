# RelayServer/websocket_agent.py
from __future__ import annotations

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from core.context import RelayContext

from .logutil import get_logger, bind, span
logger = get_logger("RelayServer.websocket_agent", file_basename="agent_ws")

router = APIRouter()

@router.websocket("/")
@router.websocket("/ws/agent")
async def agent_ws(ws: WebSocket):
	"""
	The agent's persistent connection. Whoever connects last is the agent;
	frames are handed to the channel as they come in.
	"""
	await ws.accept()
	relay: RelayContext = ws.app.state.relay
	peer = None
	try:
		peer = f"{ws.client.host}:{ws.client.port}"  # type: ignore[union-attr]
	except AttributeError:
		pass
	log = bind(logger, peer=peer)

	relay.channel.connect(ws)
	frames = 0
	try:
		with span(log, "agent.session", path=ws.url.path):
			while True:
				msg = await ws.receive()
				if msg["type"] == "websocket.receive":
					raw = msg.get("text")
					if raw is None:
						raw = msg.get("bytes") or b""
					frames += 1
					relay.channel.receive(raw)
				elif msg["type"] == "websocket.disconnect":
					log.info("ws.disconnect", extra={"code": msg.get("code"), "frames": frames})
					break
	except WebSocketDisconnect:
		log.info("ws.disconnect.ws", extra={"frames": frames})
	finally:
		relay.channel.disconnect(ws)
