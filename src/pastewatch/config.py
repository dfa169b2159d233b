from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from datetime import timedelta

from pastewatch.ingest.pastebin import DEFAULT_API_URL, DEFAULT_ITEM_URL, PastebinConfig
from pastewatch.poller import PollerConfig


@dataclass(slots=True)
class AppConfig:
    store_path: str = "pastewatch.db"
    lock_timeout_s: float = 0.05
    poller: PollerConfig = field(default_factory=PollerConfig)
    pastebin: PastebinConfig = field(default_factory=PastebinConfig)


def _num(name: str, default: str, cast=float):
    raw = os.getenv(name, default)
    try:
        v = cast(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from None
    if not math.isfinite(v) or v < 0:
        raise RuntimeError(f"{name} must be a finite number >= 0, got {raw!r}")
    return v


def config_from_env() -> AppConfig:
    """
    Build AppConfig from PASTEWATCH_* environment variables (call load_dotenv()
    first to pick up a .env file). Raises RuntimeError on invalid values.
    """
    return AppConfig(
        store_path=os.getenv("PASTEWATCH_STORE_PATH", "pastewatch.db"),
        lock_timeout_s=_num("PASTEWATCH_LOCK_TIMEOUT_S", "0.05"),
        poller=PollerConfig(
            poll_interval_s=_num("PASTEWATCH_POLL_INTERVAL_S", "60"),
            max_age=timedelta(seconds=_num("PASTEWATCH_MAX_AGE_S", "3600")),
        ),
        pastebin=PastebinConfig(
            api_url=os.getenv("PASTEWATCH_API_URL", DEFAULT_API_URL),
            item_url=os.getenv("PASTEWATCH_ITEM_URL", DEFAULT_ITEM_URL),
            limit=_num("PASTEWATCH_LIMIT", "100", int),
            timeout_s=_num("PASTEWATCH_HTTP_TIMEOUT_S", "10"),
        ),
    )
