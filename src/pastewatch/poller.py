from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional, Protocol

import structlog

from pastewatch.data.dedup import DedupCache
from pastewatch.process.processor import ItemProcessor
from pastewatch.utils.time import utc_now
from pastewatch.utils.types import Paste


class ItemSource(Protocol):
    async def fetch_batch(self) -> Optional[list[Paste]]: ...


@dataclass(slots=True)
class PollerConfig:
    poll_interval_s: float = 60.0
    max_age: timedelta = field(default_factory=lambda: timedelta(hours=1))


@dataclass(slots=True)
class CycleResult:
    """Outcome of one poll cycle. ok=False means the fetch failed and the cycle was skipped."""
    ok: bool
    fetched: int = 0
    duplicates: int = 0
    processed: int = 0
    failed: int = 0


class Poller:
    """
    Fetch → filter through the dedup cache → download/process → mark seen,
    then sleep poll_interval_s and evict cache entries older than max_age.

    This is the only layer that swallows errors: a failed fetch skips the
    cycle, a failed download or process is logged and the paste is still
    marked so it isn't retried every cycle.

    Usage:
        poller = Poller(PollerConfig(), source, processor, DedupCache())
        await poller.run_forever()   # until stop()
    """

    def __init__(
        self,
        cfg: PollerConfig,
        source: ItemSource,
        processor: ItemProcessor,
        cache: Optional[DedupCache] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.cfg = cfg
        self.source = source
        self.processor = processor
        self.cache = cache if cache is not None else DedupCache()
        self._clock = clock
        self._log = structlog.get_logger("poller")
        self._stop = asyncio.Event()

    # ---------------------------- public API ---------------------------- #

    async def run_forever(self) -> None:
        self._stop.clear()
        self._log.info(
            "poll_loop_start",
            interval_s=self.cfg.poll_interval_s,
            max_age_s=self.cfg.max_age.total_seconds(),
        )
        while not self._stop.is_set():
            await self.run_once()
            await self._sleep(self.cfg.poll_interval_s)
            evicted = self.cache.evict(self._clock(), self.cfg.max_age)
            if evicted:
                self._log.info("dedup_evicted", count=evicted, remaining=len(self.cache))
        self._log.info("poll_loop_exit")

    def stop(self) -> None:
        self._stop.set()

    async def run_once(self, now: Optional[datetime] = None) -> CycleResult:
        now = now or self._clock()
        self._log.info("checking_for_new_pastes")

        try:
            batch = await self.source.fetch_batch()
        except Exception as e:
            self._log.warning("fetch_failed", err=str(e))
            return CycleResult(ok=False)
        if batch is None:
            self._log.warning("cycle_skipped_fetch_failed")
            return CycleResult(ok=False)

        res = CycleResult(ok=True, fetched=len(batch))
        for paste in batch:
            if self.cache.seen(paste.key):
                res.duplicates += 1
                continue
            if await self._handle(paste):
                res.processed += 1
            else:
                res.failed += 1
            self.cache.mark(paste.key, now)

        self._log.info(
            "cycle_done",
            fetched=res.fetched,
            duplicates=res.duplicates,
            processed=res.processed,
            failed=res.failed,
        )
        return res

    # --------------------------- internals ----------------------------- #

    async def _handle(self, paste: Paste) -> bool:
        content = None
        try:
            content = await self.processor.download(paste)
        except Exception as e:
            self._log.warning("download_failed", key=paste.key, err=str(e))

        try:
            await self.processor.process(paste, content)
        except Exception as e:
            self._log.warning("process_failed", key=paste.key, err=str(e))
            return False
        return True

    async def _sleep(self, seconds: float) -> None:
        # wakes early on stop()
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
