# src/pastewatch/main.py
import asyncio

import structlog
from dotenv import load_dotenv

from kvstore.store import KVStore
from pastewatch.config import config_from_env
from pastewatch.data.dedup import DedupCache
from pastewatch.ingest.pastebin import PastebinSource
from pastewatch.poller import Poller
from pastewatch.process.processor import PasteProcessor

load_dotenv()
log = structlog.get_logger()


async def main():
    cfg = config_from_env()
    source = PastebinSource(cfg.pastebin)
    store = None
    poller = None

    try:
        # fails fast with LockTimeout if another instance holds the file
        store = await KVStore.open(cfg.store_path, timeout=cfg.lock_timeout_s)
        log.info("store_opened", path=cfg.store_path)

        await source.start()

        poller = Poller(
            cfg.poller,
            source=source,
            processor=PasteProcessor(source, store),
            cache=DedupCache(),
        )
        await poller.run_forever()
    finally:
        if poller is not None:
            poller.stop()
        await source.stop()
        if store is not None:
            await store.close()
        log.info("shutdown_complete")


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
