import logging
logger = logging.getLogger(__name__)

from typing import List


class AgentFileIndex:
	"""Flat file list an agent may POST out of band. Not used for listing or fetch."""
	def __init__(self):
		self.files: List[str] = []

	def replace(self, files: List[str]) -> int:
		self.files = list(files)
		logger.info("index.updated", extra={"count": len(self.files)})
		return len(self.files)
