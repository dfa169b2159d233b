from __future__ import annotations
from typing import Any, Optional
from pastewatch.utils.types import Paste

def _int_or_none(v: Any) -> Optional[int]:
    # the API sends numbers as strings ("1591982380")
    if v is None or v == "":
        return None
    try:
        return int(v)
    except (TypeError, ValueError, OverflowError):
        return None

def parse_paste(m: Any) -> Optional[Paste]:
    """
    Return Paste if `m` looks like a scraping API record; else None.

    Record example:
      {
        "scrape_url": "https://scrape.pastebin.com/api_scrape_item.php?i=0CeaNm8Y",
        "full_url": "https://pastebin.com/0CeaNm8Y",
        "date": "1442911802",
        "key": "0CeaNm8Y",
        "size": "890",
        "expire": "1442998159",
        "title": "Once we all know when we goto function",
        "syntax": "java",
        "user": "admin"
      }
    """
    if not isinstance(m, dict):
        return None

    key = m.get("key")
    if not isinstance(key, str) or not key.strip():
        return None

    return Paste(
        key=key.strip(),
        scrape_url=str(m.get("scrape_url") or ""),
        full_url=str(m.get("full_url") or ""),
        date=_int_or_none(m.get("date")),
        size=_int_or_none(m.get("size")),
        expire=_int_or_none(m.get("expire")),
        title=str(m.get("title") or ""),
        syntax=str(m.get("syntax") or ""),
        user=str(m.get("user") or ""),
    )
