# core/context.py
from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path

from core.agent.channel import AgentChannel
from core.archive.assembler import ArchiveAssembler
from core.correlation.correlator import ResponseCorrelator
from core.listing.cache import DirectoryListingCache
from core.listing.index import AgentFileIndex
from core.staging.store import TransientFileStore


@dataclass
class RelaySettings:
	upload_dir: Path = Path("uploads")
	listing_timeout: float = 15.0
	fetch_timeout: float = 60.0
	accept_empty_listing: bool = False
	archive_compresslevel: int = 9
	staged_max_age: float = 3600.0
	sweep_interval: float = 300.0


@dataclass
class RelayContext:
	"""Everything one relay instance shares between requests."""
	settings: RelaySettings
	store: TransientFileStore
	channel: AgentChannel
	listings: DirectoryListingCache
	correlator: ResponseCorrelator
	archives: ArchiveAssembler
	uploaded: AgentFileIndex = field(default_factory=AgentFileIndex)

	@classmethod
	def create(cls, settings: RelaySettings | None = None) -> "RelayContext":
		settings = settings or RelaySettings()
		store = TransientFileStore(settings.upload_dir)
		channel = AgentChannel(store)
		listings = DirectoryListingCache(channel, timeout=settings.listing_timeout,
										 accept_empty=settings.accept_empty_listing)
		correlator = ResponseCorrelator(channel, timeout=settings.fetch_timeout)
		archives = ArchiveAssembler(listings, correlator, compresslevel=settings.archive_compresslevel)
		return cls(settings=settings, store=store, channel=channel, listings=listings,
				   correlator=correlator, archives=archives)
