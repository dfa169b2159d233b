from __future__ import annotations

from typing import Optional, Protocol

from kvstore.store import KVStore
from pastewatch.ingest.pastebin import PastebinSource
from pastewatch.utils.time import utc_now
from pastewatch.utils.types import Paste, PasteRecord

PASTES_BUCKET = "pastes"


class ItemProcessor(Protocol):
    """What the poller hands each new paste to."""

    async def download(self, paste: Paste) -> Optional[str]: ...

    async def process(self, paste: Paste, content: Optional[str]) -> None: ...


class PasteProcessor:
    """
    Default processor: pulls the raw paste text through the source and, when
    a store is configured, saves a PasteRecord under bucket "pastes" keyed by
    the paste key. Errors propagate; logging them is the poller's job.
    """
    def __init__(self, source: PastebinSource, store: Optional[KVStore] = None, bucket: str = PASTES_BUCKET):
        self.source = source
        self.store = store
        self.bucket = bucket

    async def download(self, paste: Paste) -> Optional[str]:
        return await self.source.fetch_raw(paste)

    async def process(self, paste: Paste, content: Optional[str]) -> None:
        if self.store is None:
            return
        rec = PasteRecord(paste=paste, fetched_at=utc_now(), content=content)
        await self.store.put(self.bucket, paste.key, rec)
