from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Optional

import aiohttp
import structlog

from pastewatch.ingest import parser
from pastewatch.utils.types import Paste

DEFAULT_API_URL = "https://scrape.pastebin.com/api_scraping.php"
DEFAULT_ITEM_URL = "https://scrape.pastebin.com/api_scrape_item.php"


@dataclass(slots=True)
class PastebinConfig:
    api_url: str = DEFAULT_API_URL
    item_url: str = DEFAULT_ITEM_URL
    limit: int = 100          # the API caps this at 250
    timeout_s: float = 10.0


class PastebinSource:
    """
    Client for Pastebin's scraping API.

    Every call is a single best-effort request: network errors, non-200
    statuses and unparseable bodies are logged and turned into None so the
    caller can skip the cycle. Nothing here retries.

    Usage:
        src = PastebinSource(PastebinConfig())
        await src.start()
        pastes = await src.fetch_batch()   # list[Paste] | None
        body = await src.fetch_raw(pastes[0])
        await src.stop()
    """

    def __init__(self, cfg: Optional[PastebinConfig] = None, session: Optional[aiohttp.ClientSession] = None):
        self.cfg = cfg or PastebinConfig()
        self._session = session
        self._owns_session = session is None
        self._log = structlog.get_logger("pastebin")

    async def start(self) -> None:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.cfg.timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True

    async def stop(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    # ---------------------------- public API ---------------------------- #

    async def fetch_batch(self) -> Optional[list[Paste]]:
        """Most recent pastes, or None if the listing could not be fetched."""
        body = await self._get_text(self.cfg.api_url, params={"limit": str(self.cfg.limit)})
        if body is None:
            return None

        try:
            payload = json.loads(body)
        except ValueError as e:
            # the API answers with plain text when the caller's IP isn't whitelisted
            self._log.warning("listing_parse_failed", err=str(e), snippet=body[:200])
            return None

        if not isinstance(payload, list):
            self._log.warning("listing_unexpected_shape", kind=type(payload).__name__)
            return None

        pastes: list[Paste] = []
        for m in payload:
            p = parser.parse_paste(m)
            if p is None:
                self._log.info("listing_record_skipped", snippet=str(m)[:200])
                continue
            pastes.append(p)
        return pastes

    async def fetch_raw(self, paste: Paste) -> Optional[str]:
        """Raw text of `paste`, or None on failure."""
        if paste.scrape_url:
            return await self._get_text(paste.scrape_url)
        return await self._get_text(self.cfg.item_url, params={"i": paste.key})

    # --------------------------- internals ----------------------------- #

    async def _get_text(self, url: str, params: Optional[dict[str, str]] = None) -> Optional[str]:
        if self._session is None:
            raise RuntimeError("PastebinSource not started")
        try:
            async with self._session.get(url, params=params) as resp:
                if resp.status != 200:
                    self._log.warning("http_error", url=url, status=resp.status)
                    return None
                return await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._log.warning("http_unreachable", url=url, err=str(e))
            return None
        except UnicodeDecodeError as e:
            self._log.warning("http_bad_body", url=url, err=str(e))
            return None
