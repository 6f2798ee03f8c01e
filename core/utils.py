import posixpath
import re

_SEP_RE = re.compile(r"[\\/]")

def human_bytes(n: int) -> str:
	units = ["B","KB","MB","GB","TB"]
	x = float(n)
	for u in units:
		if x < 1024 or u == units[-1]:
			return f"{x:.1f} {u}"
		x /= 1024.0

def to_posix(path: str) -> str:
	"""Backslashes to forward slashes; nothing else is touched."""
	return path.replace("\\", "/")

def base_name(path: str) -> str:
	"""Last segment, ignoring trailing slashes ("a/b/" -> "b")."""
	return posixpath.basename(to_posix(path).rstrip("/"))

def replace_separators(path: str, repl: str = "_") -> str:
	return _SEP_RE.sub(repl, path)
