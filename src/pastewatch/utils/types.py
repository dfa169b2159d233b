from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

# ---- ingest-level primitives ----

@dataclass(slots=True)
class Paste:
    """
    One entry of the scraping API listing. Only `key` is guaranteed; the rest
    is whatever the service chose to send.
    """
    key: str
    scrape_url: str = ""
    full_url: str = ""
    date: Optional[int] = None   # epoch seconds
    size: Optional[int] = None   # bytes
    expire: Optional[int] = None # epoch seconds, 0 = never
    title: str = ""
    syntax: str = ""
    user: str = ""

# ---- persisted per-paste state ----

@dataclass(slots=True)
class PasteRecord:
    paste: Paste
    fetched_at: datetime
    content: Optional[str] = None  # None when the download failed
