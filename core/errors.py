# core/errors.py
"""
Failures raised by the relay core. Each one maps to a single HTTP status so
the web layer can translate without knowing the details.
"""

class RelayError(Exception):
	status_code = 500
	detail = "Relay failure"

	def __init__(self, detail: str | None = None):
		self.detail = detail or self.detail
		super().__init__(self.detail)


class AgentUnavailable(RelayError):
	status_code = 503
	detail = "Agent not connected"


class ListingTimeout(RelayError):
	status_code = 504
	detail = "No files received"


class FetchTimeout(RelayError):
	status_code = 504
	detail = "File upload timeout"


class ListingNotLoaded(RelayError):
	status_code = 400
	detail = "Directory list not loaded. Please view the directory first."
