# core/correlation/matcher.py
"""
Loose path matching between a requested file and an unsolicited arrival.

The agent does not echo request ids, and it may report a path that differs
from the one we asked for (absolute vs relative, different separators). An
arrival is therefore matched against a request with a fallback chain:

	1. EXACT            normalized paths are equal
	2. ARRIVED_SUFFIX   arrived path ends with the requested path
	3. REQUESTED_SUFFIX requested path ends with the arrived path
	4. BASENAME         last path segments are equal

Known limitation: the chain is loose on purpose, so one arrival can satisfy
two different pending requests (e.g. "x/a.txt" and "y/a.txt" both match an
arrival "z/a.txt" by basename). Callers that fetch concurrently share that
hazard.
"""
from __future__ import annotations
import re
from enum import Enum
from typing import Optional

from core.utils import base_name, to_posix

STORAGE_ROOT = "storage"
_DRIVE_RE = re.compile(r"^[a-zA-Z]:")
_TRAILING_SEP_RE = re.compile(r"[\\/]$")


class MatchRule(str, Enum):
	EXACT = "exact"
	ARRIVED_SUFFIX = "arrived_suffix"
	REQUESTED_SUFFIX = "requested_suffix"
	BASENAME = "basename"


def is_absolute_like(filename: str) -> bool:
	return (
		filename.startswith(("/", "\\"))
		or filename.startswith(STORAGE_ROOT)
		or bool(_DRIVE_RE.match(filename))
	)

def logical_path(dir: str, filename: str) -> str:
	"""Path sent to the agent for `filename` listed under `dir`."""
	if is_absolute_like(filename):
		return filename
	return f"{_TRAILING_SEP_RE.sub('', dir)}/{filename}"

def match_arrival(requested: str, arrived: str) -> Optional[MatchRule]:
	"""First rule of the chain that pairs `arrived` with `requested`, or None."""
	req = to_posix(requested)
	got = to_posix(arrived)
	if req == got:
		return MatchRule.EXACT
	if got.endswith(req):
		return MatchRule.ARRIVED_SUFFIX
	if req.endswith(got):
		return MatchRule.REQUESTED_SUFFIX
	if base_name(req) == base_name(got):
		return MatchRule.BASENAME
	return None
