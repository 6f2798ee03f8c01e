# core/agent/protocol.py
"""
JSON wire format spoken with the agent.

Outbound:
	{"type": "request_dir",  "path": "<dir>"}
	{"type": "request_file", "path": "<logical path>"}
Inbound:
	{"type": "file",     "path": "<path>", "content": "<base64>"}
	{"type": "dir_list", "dir": "<dir>",   "files": ["a.jpg", ...]}
"""
from __future__ import annotations
import base64, binascii, json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError


class FileMessage(BaseModel):
	type: Literal["file"] = "file"
	path: str = Field(min_length=1)
	content: str

	def payload(self) -> bytes:
		"""Decoded bytes. Line breaks and other non-alphabet characters are skipped."""
		try:
			return base64.b64decode(self.content)
		except (binascii.Error, ValueError) as e:
			raise MalformedMessage(f"content is not base64: {e}") from e


class DirListMessage(BaseModel):
	type: Literal["dir_list"] = "dir_list"
	dir: str
	files: List[str]


@dataclass(frozen=True)
class FileArrival:
	"""A `file` message after its bytes were staged."""
	path: str
	location: Path


InboundMessage = Union[FileArrival, DirListMessage]

_MODELS = {
	"file": FileMessage,
	"dir_list": DirListMessage,
}


class MalformedMessage(ValueError):
	pass


def parse_inbound(raw: Union[str, bytes]) -> Optional[Union[FileMessage, DirListMessage]]:
	"""
	Decode one frame. Returns None for kinds we do not handle and raises
	MalformedMessage for anything that is not a well-formed known message.
	"""
	try:
		data: Any = json.loads(raw)
	except (ValueError, UnicodeDecodeError) as e:
		raise MalformedMessage(f"invalid JSON: {e}") from e
	if not isinstance(data, dict):
		raise MalformedMessage("frame is not a JSON object")

	kind = data.get("type")
	model = _MODELS.get(kind) if isinstance(kind, str) else None
	if model is None:
		return None
	try:
		return model.model_validate(data)
	except ValidationError as e:
		raise MalformedMessage(str(e)) from e


def request_dir(path: str) -> Dict[str, str]:
	return {"type": "request_dir", "path": path}

def request_file(path: str) -> Dict[str, str]:
	return {"type": "request_file", "path": path}

def dumps(payload: Dict[str, Any]) -> str:
	return json.dumps(payload, separators=(",", ":"), default=str)
